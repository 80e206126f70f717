from __future__ import annotations

import enum
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Mapping

__all__ = [
    "Token",
    "Callback",
    "TokenStatus",
    "Action",
]


# --------- Primitive / aliases ---------
Token = str
Callback = Callable[[Any], None]


class TokenStatus(enum.Enum):
    """Per-session state of a registered callback."""
    NOT_STARTED = "not_started"
    PENDING = "pending"      # running, not yet returned
    HANDLED = "handled"      # returned normally this session


# --------- Payload envelope ---------
@dataclass(slots=True)
class Action:
    """Optional payload envelope: an action type plus its data.

    The dispatcher never looks inside payloads; stores may read an Action
    and a plain dict the same way (``payload["action_type"]``,
    ``payload.get("selected_city")``, ``"selected_city" in payload``).
    """
    action_type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        if key == "action_type":
            return self.action_type
        return self.data[key]

    def __contains__(self, key: object) -> bool:
        return key == "action_type" or key in self.data

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Action":
        d = dict(d)
        action_type = d.pop("action_type")
        # accept both {"action_type", "data": {...}} and a flat mapping
        if isinstance(d.get("data"), Mapping):
            data = d.pop("data")
        else:
            data = d
        return cls(action_type=action_type, data=dict(data))
