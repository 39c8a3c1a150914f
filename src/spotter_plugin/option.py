"""Option data model

An Option is what a plugin hands back to the host: a presentable item that may
carry a local callback. Callbacks never leave the process. Before an Option is
sent it is projected into a MappedOption where the callback is replaced by an
opaque handler id (see spotter_plugin.registry).

```python
from spotter_plugin import Option

async def open_docs():
    return True

Option(name="Docs", hint="open documentation", action=open_docs)
```
"""

import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


# Action: () -> bool | List[Option], possibly awaitable
Action = Callable[[], Union[bool, List["Option"], Awaitable[Union[bool, List["Option"]]]]]

# OnQuery: (query) -> List[Option], possibly awaitable
OnQuery = Callable[[str], Union[List["Option"], Awaitable[List["Option"]]]]


@dataclass
class Option:
    """A presentable result item

    At most one of `action` / `on_query` may be set.
    """
    name: Any
    hint: Optional[str] = None
    icon: Optional[str] = None
    action: Optional[Action] = None
    on_query: Optional[OnQuery] = None
    is_hovered: Optional[bool] = None
    priority: Optional[float] = None
    important: Optional[bool] = None

    def __post_init__(self):
        if self.action is not None and self.on_query is not None:
            raise ValueError("Option cannot carry both an action and an on_query callback")


@dataclass
class MappedOption:
    """Wire projection of an Option"""
    name: str
    hint: Optional[str] = None
    icon: Optional[str] = None
    action_id: Optional[str] = None
    on_query_id: Optional[str] = None
    is_hovered: Optional[bool] = None
    priority: Optional[float] = None
    important: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the host's camelCase map, dropping absent fields"""
        result: Dict[str, Any] = {"name": self.name}
        if self.hint is not None:
            result["hint"] = self.hint
        if self.icon is not None:
            result["icon"] = self.icon
        if self.action_id is not None:
            result["actionId"] = self.action_id
        if self.on_query_id is not None:
            result["onQueryId"] = self.on_query_id
        if self.is_hovered is not None:
            result["isHovered"] = self.is_hovered
        if self.priority is not None:
            result["priority"] = self.priority
        if self.important is not None:
            result["important"] = self.important
        return result


def display_name(name: Any) -> str:
    """Coerce an Option name to text the way the host renders it"""
    if isinstance(name, bool):
        return "true" if name else "false"
    if name is None:
        return "null"
    if isinstance(name, float):
        if math.isnan(name):
            return "NaN"
        if math.isinf(name):
            return "Infinity" if name > 0 else "-Infinity"
        if name.is_integer():
            return str(int(name))
    return str(name)
