"""Envelope types exchanged with the host

## Host -> Plugin

```
{ id, type, query?, actionId?, onQueryId?, mlGlobalActionPath? }
```

`type` selects one of the request variants below. Each variant carries only
the fields that make sense for its kind.

## Plugin -> Host

```
{ id, options: MappedOption[], complete }                          Response
{ id: "", options: [], complete: false, mlGlobalActionPath }       Notification
```
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from spotter_plugin.option import MappedOption


class RequestType(str, Enum):
    """Request kind discriminator"""
    ON_QUERY = "onQuery"
    ON_OPTION_QUERY = "onOptionQuery"
    EXEC_ACTION = "execAction"
    ML_ON_GLOBAL_ACTION_PATH = "mlOnGlobalActionPath"
    ON_OPEN_SPOTTER = "onOpenSpotter"

    @classmethod
    def from_str(cls, v: Any) -> Optional["RequestType"]:
        """Convert a wire tag to RequestType, returns None if unknown"""
        try:
            return cls(v)
        except ValueError:
            return None


@dataclass(frozen=True)
class OnQueryRequest:
    """Top-level query typed into the host"""
    id: str
    query: str

    type = RequestType.ON_QUERY


@dataclass(frozen=True)
class OnOptionQueryRequest:
    """Query scoped to an Option that carried an on_query callback"""
    id: str
    on_query_id: str
    query: str

    type = RequestType.ON_OPTION_QUERY


@dataclass(frozen=True)
class ExecActionRequest:
    """Run the action attached to a previously sent Option"""
    id: str
    action_id: str

    type = RequestType.EXEC_ACTION


@dataclass(frozen=True)
class GlobalActionPathRequest:
    """Fire-and-forget push carrying the host's global action path"""
    id: str
    ml_global_action_path: Optional[str] = None

    type = RequestType.ML_ON_GLOBAL_ACTION_PATH


@dataclass(frozen=True)
class OpenSpotterRequest:
    """The host UI was opened"""
    id: str

    type = RequestType.ON_OPEN_SPOTTER


Request = Union[
    OnQueryRequest,
    OnOptionQueryRequest,
    ExecActionRequest,
    GlobalActionPathRequest,
    OpenSpotterRequest,
]


@dataclass
class Response:
    """The single answer to a correlated host request"""
    id: str
    options: List[MappedOption] = field(default_factory=list)
    complete: bool = False

    @classmethod
    def empty(cls, request_id: str, complete: bool = True) -> "Response":
        """Response with no options"""
        return cls(id=request_id, options=[], complete=complete)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "options": [option.to_dict() for option in self.options],
            "complete": self.complete,
        }


@dataclass
class Notification:
    """Unsolicited push to the host; no response is expected"""
    ml_global_action_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": "",
            "options": [],
            "complete": False,
            "mlGlobalActionPath": self.ml_global_action_path,
        }


Envelope = Union[Response, Notification]
