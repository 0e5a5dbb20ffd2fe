"""
The event envelope published to session and restaurant channels.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any

_REQUIRED_TEXT = ("type", "restaurant_id", "session_id")
_MAPPINGS = ("entity", "actor")


@dataclass
class Event:
    """
    One session event.

    ``entity`` carries the payload (ids, totals, statuses) and ``actor`` says
    who caused it: ``{"kind": "guest", ...}`` or ``{"kind": "staff", ...}``.
    """

    type: str
    restaurant_id: str
    session_id: str
    table_id: str | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1

    def __post_init__(self) -> None:
        for name in _REQUIRED_TEXT:
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"Event {name} must be a non-empty string")
        for name in _MAPPINGS:
            value = getattr(self, name)
            if value is None:
                setattr(self, name, {})
            elif not isinstance(value, dict):
                raise ValueError(f"Event {name} must be a dict")
        if self.ts is None:
            self.ts = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Event:
        return cls(**json.loads(raw))
