"""Tests for the Dispatcher protocol state machine"""

import asyncio
import json

import pytest

from spotter_plugin.dispatcher import Dispatcher
from spotter_plugin.envelope import (
    ExecActionRequest,
    GlobalActionPathRequest,
    OnOptionQueryRequest,
    OnQueryRequest,
    OpenSpotterRequest,
    Response,
)
from spotter_plugin.option import Option
from spotter_plugin.registry import HandlerRegistry


class RecordingPlugin:
    """Plugin double whose query hook returns preset options"""

    def __init__(self, options=None, fail=False):
        self.options = options if options is not None else []
        self.fail = fail
        self.opened = 0
        self.paths = []
        self.queries = []

    def on_open_spotter(self):
        self.opened += 1

    def on_global_action_path(self, action_path):
        self.paths.append(action_path)

    def on_query(self, query):
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("query hook exploded")
        return self.options


def make_dispatcher(plugin, **kwargs):
    sent = []
    dispatcher = Dispatcher(plugin, HandlerRegistry(), sent.append, **kwargs)
    return dispatcher, sent


# TEST200: onQuery maps the hook's options and answers complete=False; execAction of the returned id answers complete=True
@pytest.mark.asyncio
async def test_query_then_exec_scenario():
    async def copy_history():
        return True

    plugin = RecordingPlugin([Option(name="-ml", action=copy_history)])
    dispatcher, sent = make_dispatcher(plugin)

    response = await dispatcher.handle(OnQueryRequest(id="1", query="-ml"))

    assert plugin.queries == ["-ml"]
    assert response.id == "1"
    assert response.complete is False
    assert len(response.options) == 1
    assert response.options[0].name == "-ml"
    action_id = response.options[0].action_id
    assert action_id
    assert response.to_dict() == {
        "id": "1",
        "options": [{"name": "-ml", "actionId": action_id}],
        "complete": False,
    }

    response = await dispatcher.handle(ExecActionRequest(id="2", action_id=action_id))

    assert response.to_dict() == {"id": "2", "options": [], "complete": True}
    assert len(sent) == 2
    assert sent[1] is response


# TEST201: An action returning False answers complete=False with no options
@pytest.mark.asyncio
async def test_exec_false():
    dispatcher, _ = make_dispatcher(RecordingPlugin())
    action_id = dispatcher.registry.register_action(lambda: False)

    response = await dispatcher.handle(ExecActionRequest(id="3", action_id=action_id))

    assert response.complete is False
    assert response.options == []


# TEST202: An action returning options answers complete=False with one mapped option per input
@pytest.mark.asyncio
async def test_exec_returns_options():
    dispatcher, _ = make_dispatcher(RecordingPlugin())
    next_options = [
        Option(name="a", action=lambda: True),
        Option(name="b"),
        Option(name="c", on_query=lambda q: []),
    ]
    action_id = dispatcher.registry.register_action(lambda: next_options)

    response = await dispatcher.handle(ExecActionRequest(id="4", action_id=action_id))

    assert response.complete is False
    assert [o.name for o in response.options] == ["a", "b", "c"]
    assert response.options[0].action_id in dispatcher.registry
    assert response.options[1].action_id is None
    assert response.options[2].on_query_id in dispatcher.registry


# TEST203: onOptionQuery passes the query text to an async callback and maps its options
@pytest.mark.asyncio
async def test_option_query_async():
    seen = []

    async def search(query):
        seen.append(query)
        return [Option(name=f"result for {query}")]

    dispatcher, _ = make_dispatcher(RecordingPlugin())
    query_id = dispatcher.registry.register_query(search)

    response = await dispatcher.handle(OnOptionQueryRequest(id="5", on_query_id=query_id, query="cats"))

    assert seen == ["cats"]
    assert response.complete is False
    assert response.options[0].name == "result for cats"


# TEST204: onOptionQuery returning a boolean closes the interaction
@pytest.mark.asyncio
async def test_option_query_boolean():
    dispatcher, _ = make_dispatcher(RecordingPlugin())
    query_id = dispatcher.registry.register_query(lambda q: True)

    response = await dispatcher.handle(OnOptionQueryRequest(id="6", on_query_id=query_id, query=""))

    assert response == Response(id="6", options=[], complete=True)


# TEST205: An unknown handler id yields an empty complete response and does not raise
@pytest.mark.asyncio
async def test_unknown_handler_id():
    dispatcher, sent = make_dispatcher(RecordingPlugin())

    action = await dispatcher.handle(ExecActionRequest(id="7", action_id="stale"))
    query = await dispatcher.handle(OnOptionQueryRequest(id="8", on_query_id="stale", query="q"))

    assert action == Response(id="7", options=[], complete=True)
    assert query == Response(id="8", options=[], complete=True)
    assert sent == [action, query]


# TEST206: A raising callback is contained to its request
@pytest.mark.asyncio
async def test_handler_failure_contained(capsys):
    def broken():
        raise KeyError("boom")

    dispatcher, sent = make_dispatcher(RecordingPlugin())
    action_id = dispatcher.registry.register_action(broken)

    response = await dispatcher.handle(ExecActionRequest(id="9", action_id=action_id))

    assert response == Response(id="9", options=[], complete=True)
    assert "Handler failure" in capsys.readouterr().err


# TEST207: A result that is neither bool nor a list of options is a handler failure
@pytest.mark.asyncio
async def test_bad_result_type():
    dispatcher, _ = make_dispatcher(RecordingPlugin())
    action_id = dispatcher.registry.register_action(lambda: "done")
    list_id = dispatcher.registry.register_action(lambda: ["not an option"])

    assert (await dispatcher.handle(ExecActionRequest(id="10", action_id=action_id))).complete is True
    assert (await dispatcher.handle(ExecActionRequest(id="11", action_id=list_id))).complete is True


# TEST208: A failing top-level query hook answers with an empty complete response
@pytest.mark.asyncio
async def test_query_hook_failure():
    dispatcher, _ = make_dispatcher(RecordingPlugin(fail=True))

    response = await dispatcher.handle(OnQueryRequest(id="12", query="x"))

    assert response == Response(id="12", options=[], complete=True)


# TEST209: A query hook returning None is treated as no options
@pytest.mark.asyncio
async def test_query_hook_none():
    plugin = RecordingPlugin()
    plugin.options = None
    plugin.on_query = lambda query: None
    dispatcher, _ = make_dispatcher(plugin)

    response = await dispatcher.handle(OnQueryRequest(id="13", query="x"))

    assert response == Response(id="13", options=[], complete=False)


# TEST210: onOpenSpotter invokes the open hook and sends nothing
@pytest.mark.asyncio
async def test_open_spotter():
    plugin = RecordingPlugin()
    dispatcher, sent = make_dispatcher(plugin)

    assert await dispatcher.handle(OpenSpotterRequest(id="14")) is None
    assert plugin.opened == 1
    assert sent == []


# TEST211: The push hook runs only when a payload is present, and nothing is sent
@pytest.mark.asyncio
async def test_global_action_path():
    plugin = RecordingPlugin()
    dispatcher, sent = make_dispatcher(plugin)

    await dispatcher.handle(GlobalActionPathRequest(id="", ml_global_action_path="a>b"))
    await dispatcher.handle(GlobalActionPathRequest(id="", ml_global_action_path=None))
    await dispatcher.handle(GlobalActionPathRequest(id="", ml_global_action_path=""))

    assert plugin.paths == ["a>b"]
    assert sent == []


# TEST212: A failing push hook is reported and swallowed
@pytest.mark.asyncio
async def test_push_hook_failure(capsys):
    plugin = RecordingPlugin()

    def broken(path):
        raise RuntimeError("disk full")

    plugin.on_global_action_path = broken
    dispatcher, sent = make_dispatcher(plugin)

    assert await dispatcher.handle(GlobalActionPathRequest(id="", ml_global_action_path="p")) is None
    assert sent == []
    assert "disk full" in capsys.readouterr().err


# TEST213: A callback exceeding the handler timeout is answered with an empty complete response
@pytest.mark.asyncio
async def test_handler_timeout():
    async def never():
        await asyncio.sleep(10)
        return True

    dispatcher, _ = make_dispatcher(RecordingPlugin(), handler_timeout=0.05)
    action_id = dispatcher.registry.register_action(never)

    response = await dispatcher.handle(ExecActionRequest(id="15", action_id=action_id))

    assert response == Response(id="15", options=[], complete=True)


# TEST214: A malformed message is dropped and the next well-formed one is answered
@pytest.mark.asyncio
async def test_feed_malformed_then_valid(capsys):
    dispatcher, sent = make_dispatcher(RecordingPlugin([Option(name="ok")]))

    assert dispatcher.feed(b"\x00garbage") is None
    assert sent == []
    assert "malformed" in capsys.readouterr().err

    task = dispatcher.feed(json.dumps({"id": "16", "type": "onQuery", "query": "q"}))
    await task

    assert sent == [Response(id="16", options=sent[0].options, complete=False)]
    assert sent[0].options[0].name == "ok"


# TEST215: A suspended callback does not block later requests; responses complete out of order
@pytest.mark.asyncio
async def test_no_head_of_line_blocking():
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return True

    dispatcher, sent = make_dispatcher(RecordingPlugin([Option(name="fast")]))
    action_id = dispatcher.registry.register_action(slow)

    dispatcher.feed(json.dumps({"id": "slow", "type": "execAction", "actionId": action_id}))
    dispatcher.feed(json.dumps({"id": "fast", "type": "onQuery", "query": ""}))

    for _ in range(100):
        if sent:
            break
        await asyncio.sleep(0.001)
    await asyncio.sleep(0.01)

    assert [r.id for r in sent] == ["fast"]
    assert dispatcher.pending == 1

    release.set()
    await dispatcher.drain()

    assert [r.id for r in sent] == ["fast", "slow"]
    assert dispatcher.pending == 0


# TEST216: An action whose generation was superseded while it ran still answers normally
@pytest.mark.asyncio
async def test_supersession_during_invocation():
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return [Option(name="next", action=lambda: True)]

    plugin = RecordingPlugin([Option(name="slow", action=slow)])
    dispatcher, _ = make_dispatcher(plugin)
    dispatcher.registry.retired_limit = 0

    first = await dispatcher.handle(OnQueryRequest(id="a", query=""))
    task = asyncio.ensure_future(
        dispatcher.handle(ExecActionRequest(id="b", action_id=first.options[0].action_id))
    )
    await asyncio.sleep(0)

    plugin.options = []
    await dispatcher.handle(OnQueryRequest(id="c", query=""))
    release.set()
    response = await task

    assert response.complete is False
    assert response.options[0].name == "next"


# TEST217: cancel() abandons in-flight requests without responding
@pytest.mark.asyncio
async def test_cancel_in_flight():
    async def never():
        await asyncio.Event().wait()

    dispatcher, sent = make_dispatcher(RecordingPlugin())
    action_id = dispatcher.registry.register_action(never)
    dispatcher.feed(json.dumps({"id": "x", "type": "execAction", "actionId": action_id}))
    await asyncio.sleep(0)

    await dispatcher.cancel()

    assert dispatcher.pending == 0
    assert sent == []


# TEST218: A correlated request without its handler id is still answered empty and complete
@pytest.mark.asyncio
async def test_feed_missing_handler_id_is_answered():
    dispatcher, sent = make_dispatcher(RecordingPlugin())

    await dispatcher.feed(json.dumps({"id": "9", "type": "execAction"}))
    await dispatcher.feed(json.dumps({"id": "10", "type": "onOptionQuery", "query": "x"}))

    assert sent == [
        Response(id="9", options=[], complete=True),
        Response(id="10", options=[], complete=True),
    ]


# TEST219: After a drill-down, a sibling action from the previous root set still runs when a new query races it
@pytest.mark.asyncio
async def test_sibling_action_survives_drill_down_and_new_query():
    ran = []

    def first():
        ran.append("a")
        return [Option(name="deeper", action=lambda: True)]

    def second():
        ran.append("b")
        return True

    plugin = RecordingPlugin([Option(name="a", action=first), Option(name="b", action=second)])
    dispatcher, _ = make_dispatcher(plugin)

    root = await dispatcher.handle(OnQueryRequest(id="1", query=""))
    [a, b] = root.options
    drilled = await dispatcher.handle(ExecActionRequest(id="2", action_id=a.action_id))
    assert drilled.options[0].name == "deeper"

    plugin.options = []
    await dispatcher.handle(OnQueryRequest(id="3", query=""))
    response = await dispatcher.handle(ExecActionRequest(id="4", action_id=b.action_id))

    assert ran == ["a", "b"]
    assert response == Response(id="4", options=[], complete=True)
