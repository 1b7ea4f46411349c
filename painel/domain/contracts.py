from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from painel.domain.records import LineItem, PendingAttachment


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class Actor:
    owner_id: str
    display_name: str


@dataclass(frozen=True)
class ReturnInput:
    """Validated return payload; ``fields`` holds only the record attributes sent."""

    fields: Dict[str, str]
    items: Tuple[LineItem, ...] | None = None
    uploads: Tuple[PendingAttachment, ...] = ()


@dataclass(frozen=True)
class OccurrenceInput:
    fields: Dict[str, str] = field(default_factory=dict)
