"""Handler Registry - correlating handler ids to local callbacks

Options carrying an action or an on_query callback are mapped to wire form by
replacing the callback with a freshly generated handler id. The registry keeps
the id -> callback tables the Dispatcher resolves when the host later refers
to an id.

## Generations

Every `map_options` call creates one *generation*, tagged with the context
that produced it:

- `ROOT` for the results of a top-level query
- the handler id whose invocation produced the options

A new generation for a context supersedes the previous generation for that
context, together with every generation that descends from it (generations
whose context is a handler id registered in a superseded generation). A new
ROOT generation supersedes every live generation.

Superseded generations are *retired* rather than dropped. Everything one
supersession retires forms a single batch, and the newest `retired_limit`
batches stay resolvable so a host request that raced with the supersession is
still honoured. Older batches are dropped and their ids resolve to
UnknownHandlerId.

Generation 0 is pinned: callbacks registered without a generation live until
`clear()`.
"""

import secrets
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from spotter_plugin.option import Action, MappedOption, OnQuery, Option, display_name


ROOT = "__root__"

PINNED_GENERATION = 0

# 128-bit tokens
HANDLER_ID_BYTES = 16


class RegistryError(Exception):
    """Base registry error"""
    pass


class UnknownHandlerId(RegistryError):
    """Handler id is not (or no longer) registered"""

    def __init__(self, handler_id: str, kind: str):
        super().__init__(f"unknown {kind} handler id: {handler_id}")
        self.handler_id = handler_id
        self.kind = kind


@dataclass
class Generation:
    """One batch of options mapped together"""
    number: int
    context: str
    handler_ids: Set[str] = field(default_factory=set)


def generate_handler_id() -> str:
    """Return a new random handler id"""
    return secrets.token_hex(HANDLER_ID_BYTES)


class HandlerRegistry:
    """Stores action and option-query callbacks by handler id"""

    def __init__(self, retired_limit: int = 1):
        """Create an empty registry

        Args:
            retired_limit: Number of supersessions whose generations stay resolvable
        """
        if retired_limit < 0:
            raise ValueError("retired_limit must not be negative")
        self.retired_limit = retired_limit
        self._actions: Dict[str, Tuple[Action, int]] = {}
        self._queries: Dict[str, Tuple[OnQuery, int]] = {}
        self._generations: Dict[int, Generation] = {
            PINNED_GENERATION: Generation(PINNED_GENERATION, ROOT),
        }
        self._current: Dict[str, int] = {}
        self._retired: Deque[List[int]] = deque()
        self._next_generation = PINNED_GENERATION + 1

    # --- registration ---

    def register_action(self, fn: Action, generation: Optional[int] = None) -> str:
        """Register an action callback and return its handler id"""
        handler_id = self._new_id()
        gen = self._generation(generation)
        self._actions[handler_id] = (fn, gen.number)
        gen.handler_ids.add(handler_id)
        return handler_id

    def register_query(self, fn: OnQuery, generation: Optional[int] = None) -> str:
        """Register an option-query callback and return its handler id"""
        handler_id = self._new_id()
        gen = self._generation(generation)
        self._queries[handler_id] = (fn, gen.number)
        gen.handler_ids.add(handler_id)
        return handler_id

    def begin_generation(self, context: str = ROOT) -> int:
        """Start a new generation for `context`, superseding its predecessor

        Returns:
            The new generation number
        """
        if context == ROOT:
            self._retire(sorted(self._current.values()))
        else:
            previous = self._current.get(context)
            if previous is not None:
                self._retire(self._with_descendants(previous))

        number = self._next_generation
        self._next_generation += 1
        self._generations[number] = Generation(number, context)
        self._current[context] = number
        return number

    def map_options(self, options: Iterable[Option], context: str = ROOT) -> List[MappedOption]:
        """Project options to wire form as one new generation

        Any callback carried by an option is registered and replaced by its
        handler id.

        Args:
            options: Options produced for one result set
            context: ROOT, or the handler id whose invocation produced them

        Returns:
            The mapped options, in input order
        """
        generation = self.begin_generation(context)
        mapped = []
        for option in options:
            mapped_option = MappedOption(
                name=display_name(option.name),
                hint=option.hint,
                icon=option.icon,
                is_hovered=option.is_hovered,
                priority=option.priority,
                important=option.important,
            )
            if option.action is not None:
                mapped_option.action_id = self.register_action(option.action, generation)
            if option.on_query is not None:
                mapped_option.on_query_id = self.register_query(option.on_query, generation)
            mapped.append(mapped_option)
        return mapped

    # --- resolution ---

    def get_action(self, handler_id: str) -> Optional[Action]:
        entry = self._actions.get(handler_id)
        return entry[0] if entry is not None else None

    def get_query(self, handler_id: str) -> Optional[OnQuery]:
        entry = self._queries.get(handler_id)
        return entry[0] if entry is not None else None

    def resolve_action(self, handler_id: str) -> Action:
        """Return the action for `handler_id`

        Raises:
            UnknownHandlerId: If the id is not registered
        """
        fn = self.get_action(handler_id)
        if fn is None:
            raise UnknownHandlerId(handler_id, "action")
        return fn

    def resolve_query(self, handler_id: str) -> OnQuery:
        """Return the option-query callback for `handler_id`

        Raises:
            UnknownHandlerId: If the id is not registered
        """
        fn = self.get_query(handler_id)
        if fn is None:
            raise UnknownHandlerId(handler_id, "query")
        return fn

    # --- lifecycle ---

    def is_retired(self, handler_id: str) -> bool:
        """Whether the id belongs to a superseded but still resolvable generation"""
        gen = self._generation_of(handler_id)
        return gen is not None and any(gen in batch for batch in self._retired)

    def live_generations(self) -> List[int]:
        """Generation numbers that are neither retired nor pinned"""
        return sorted(self._current.values())

    def clear(self) -> None:
        """Drop every registration, pinned ones included"""
        self._actions.clear()
        self._queries.clear()
        self._current.clear()
        self._retired.clear()
        self._generations = {PINNED_GENERATION: Generation(PINNED_GENERATION, ROOT)}

    def __len__(self) -> int:
        return len(self._actions) + len(self._queries)

    def __contains__(self, handler_id: str) -> bool:
        return handler_id in self._actions or handler_id in self._queries

    # --- internal ---

    def _new_id(self) -> str:
        handler_id = generate_handler_id()
        while handler_id in self:
            handler_id = generate_handler_id()
        return handler_id

    def _generation(self, number: Optional[int]) -> Generation:
        if number is None:
            number = PINNED_GENERATION
        gen = self._generations.get(number)
        if gen is None:
            raise RegistryError(f"generation {number} is not active")
        return gen

    def _generation_of(self, handler_id: str) -> Optional[int]:
        entry = self._actions.get(handler_id) or self._queries.get(handler_id)
        return entry[1] if entry is not None else None

    def _with_descendants(self, number: int) -> List[int]:
        """`number` plus every live generation produced from its handlers"""
        found = [number]
        pending = [number]
        while pending:
            parent = self._generations[pending.pop()]
            for context, child in list(self._current.items()):
                if context in parent.handler_ids and child not in found:
                    found.append(child)
                    pending.append(child)
        return sorted(found)

    def _retire(self, numbers: List[int]) -> None:
        if not numbers:
            return
        for number in numbers:
            gen = self._generations[number]
            if self._current.get(gen.context) == number:
                del self._current[gen.context]
        self._retired.append(numbers)

        while len(self._retired) > self.retired_limit:
            for number in self._retired.popleft():
                self._drop(number)

    def _drop(self, number: int) -> None:
        gen = self._generations.pop(number, None)
        if gen is None:
            return
        for handler_id in gen.handler_ids:
            self._actions.pop(handler_id, None)
            self._queries.pop(handler_id, None)
