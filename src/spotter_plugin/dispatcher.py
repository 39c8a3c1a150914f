"""Dispatcher - the per-request protocol state machine

Every inbound request is handled independently, in its own task, so a slow
callback never blocks the requests behind it. Responses are correlated by
request id, not by order.

| Inbound              | Action                                  | Outbound                         |
|----------------------|-----------------------------------------|----------------------------------|
| onOpenSpotter        | plugin.on_open_spotter()                | none                             |
| mlOnGlobalActionPath | plugin.on_global_action_path(path)      | none                             |
| onQuery              | plugin.on_query(query), map results     | options, complete=False          |
| execAction           | registered action()                     | bool -> [], complete=bool        |
|                      |                                         | list -> options, complete=False  |
| onOptionQuery        | registered on_query(query)              | same as execAction               |

Any failure while answering a correlated request (unknown handler id, a
callback raising, a bad result, a timeout) is reported to stderr and answered
with an empty, complete response. The host is never left waiting unless a
callback never finishes and no handler timeout is configured.
"""

import asyncio
import inspect
import sys
import traceback
from typing import Any, Callable, List, Optional, Set, Union

from spotter_plugin.codec import Codec, JsonCodec, MalformedEnvelope
from spotter_plugin.envelope import (
    Envelope,
    ExecActionRequest,
    GlobalActionPathRequest,
    OnOptionQueryRequest,
    OnQueryRequest,
    OpenSpotterRequest,
    Request,
    Response,
)
from spotter_plugin.option import Option
from spotter_plugin.registry import ROOT, HandlerRegistry, UnknownHandlerId


class HandlerFailure(Exception):
    """A user callback raised, timed out or returned something unusable"""

    def __init__(self, request: Request, message: str):
        super().__init__(f"{request.type.value} {request.id!r}: {message}")
        self.request = request


async def _invoke(fn: Callable, *args) -> Any:
    """Call a sync or async callback"""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _as_options(request: Request, result: Any) -> List[Option]:
    if result is None:
        return []
    if isinstance(result, (list, tuple)) and all(isinstance(item, Option) for item in result):
        return list(result)
    raise HandlerFailure(request, f"expected bool or list of Option, got {type(result).__name__}")


class Dispatcher:
    """Routes decoded requests to the plugin and its registered callbacks"""

    def __init__(
        self,
        plugin,
        registry: HandlerRegistry,
        send: Callable[[Envelope], None],
        codec: Optional[Codec] = None,
        handler_timeout: Optional[float] = None,
    ):
        """Create a dispatcher

        Args:
            plugin: Object providing on_open_spotter, on_global_action_path
                and on_query hooks
            registry: Handler registry owned by the plugin
            send: Outbound sink, normally TransportSession.send
            codec: Codec used by feed() to decode raw messages
            handler_timeout: Seconds before a pending callback is abandoned
        """
        self.plugin = plugin
        self.registry = registry
        self.send = send
        self.codec = codec if codec is not None else JsonCodec()
        self.handler_timeout = handler_timeout
        self._tasks: Set[asyncio.Task] = set()

    def feed(self, data: Union[str, bytes]) -> Optional[asyncio.Task]:
        """Decode one raw message and schedule its handling

        Malformed messages are reported and dropped.

        Returns:
            The task handling the request, or None if it was dropped
        """
        try:
            request = self.codec.decode(data)
        except MalformedEnvelope as e:
            print(f"[Dispatcher] Dropping malformed envelope: {e}", file=sys.stderr)
            return None

        task = asyncio.create_task(self.handle(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight request to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Cancel every in-flight request; no responses are sent for them"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def handle(self, request: Request) -> Optional[Response]:
        """Process one request and send its response, if the kind has one

        Returns:
            The response sent, or None for notification kinds
        """
        if isinstance(request, OpenSpotterRequest):
            self._notify(request, self.plugin.on_open_spotter)
            return None

        if isinstance(request, GlobalActionPathRequest):
            if request.ml_global_action_path:
                self._notify(request, self.plugin.on_global_action_path, request.ml_global_action_path)
            return None

        try:
            response = await self._bounded(request, self._respond(request))
        except UnknownHandlerId as e:
            print(f"[Dispatcher] {e}", file=sys.stderr)
            response = Response.empty(request.id)
        except HandlerFailure as e:
            print(f"[Dispatcher] Handler failure: {e}", file=sys.stderr)
            response = Response.empty(request.id)
        except Exception as e:
            failure = HandlerFailure(request, f"{type(e).__name__}: {e}")
            print(f"[Dispatcher] Handler failure: {failure}\n{traceback.format_exc()}", file=sys.stderr)
            response = Response.empty(request.id)

        self.send(response)
        return response

    # --- internal ---

    async def _bounded(self, request: Request, work) -> Response:
        if self.handler_timeout is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=self.handler_timeout)
        except asyncio.TimeoutError:
            raise HandlerFailure(request, f"no result within {self.handler_timeout}s")

    async def _respond(self, request: Request) -> Response:
        if isinstance(request, OnQueryRequest):
            result = await _invoke(self.plugin.on_query, request.query)
            options = _as_options(request, result)
            return Response(id=request.id, options=self.registry.map_options(options, ROOT), complete=False)

        if isinstance(request, ExecActionRequest):
            fn = self.registry.resolve_action(request.action_id)
            result = await _invoke(fn)
            return self._result_response(request, result, request.action_id)

        if isinstance(request, OnOptionQueryRequest):
            fn = self.registry.resolve_query(request.on_query_id)
            result = await _invoke(fn, request.query)
            return self._result_response(request, result, request.on_query_id)

        raise HandlerFailure(request, "request kind has no response")

    def _result_response(self, request: Request, result: Any, context: str) -> Response:
        if isinstance(result, bool):
            return Response.empty(request.id, complete=result)
        options = _as_options(request, result)
        return Response(id=request.id, options=self.registry.map_options(options, context), complete=False)

    def _notify(self, request: Request, hook: Callable, *args) -> None:
        try:
            result = hook(*args)
        except Exception:
            print(f"[Dispatcher] {request.type.value} hook failed:\n{traceback.format_exc()}", file=sys.stderr)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._notify_done(request))

    def _notify_done(self, request: Request):
        def done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                print(f"[Dispatcher] {request.type.value} hook failed: {error!r}", file=sys.stderr)
        return done
