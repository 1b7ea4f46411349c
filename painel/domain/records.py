from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, Tuple, Union


STATUS_PENDING = "pendente"
STATUS_IN_REVIEW = "em_analise"
STATUS_REVIEWED = "revisado"
STATUS_FINALIZED = "finalizado"

RETURN_STATUSES: Tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_IN_REVIEW,
    STATUS_REVIEWED,
    STATUS_FINALIZED,
)

STATUS_LABELS: Dict[str, str] = {
    STATUS_PENDING: "Pendente",
    STATUS_IN_REVIEW: "Em Analise",
    STATUS_REVIEWED: "Revisado",
    STATUS_FINALIZED: "Finalizado",
}

_STATUS_TOGGLE = {
    STATUS_PENDING: STATUS_REVIEWED,
    STATUS_REVIEWED: STATUS_PENDING,
}


class InvalidRecordError(ValueError):
    """Raised when a record is built in a shape the domain never allows."""


class StatusTransitionError(ValueError):
    def __init__(self, current: str, requested: str | None = None) -> None:
        self.current = current
        self.requested = requested
        target = requested or "?"
        super().__init__(f"status transition not allowed: {current} -> {target}")


@dataclass(frozen=True)
class LineItem:
    product: str
    quantity: float = 0.0
    code: str = ""
    family: str = ""
    group: str = ""
    unit_type: str = ""
    reason: str = ""
    condition: str = ""
    recurrence: str = ""
    id: int | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "codigo": self.code,
            "produto": self.product,
            "familia": self.family,
            "grupo": self.group,
            "quantidade": self.quantity,
            "tipo": self.unit_type,
            "motivo": self.reason,
            "estado": self.condition,
            "reincidencia": self.recurrence,
        }


@dataclass(frozen=True)
class EditHistoryEntry:
    actor: str
    timestamp: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"usuario": self.actor, "data": self.timestamp, "alteracao": self.description}


@dataclass(frozen=True)
class PendingAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class UploadedAttachment:
    url: str


Attachment = Union[PendingAttachment, UploadedAttachment]


@dataclass(frozen=True)
class ReturnRecord:
    id: int | None
    user_id: str
    date: str
    client: str
    items: Tuple[LineItem, ...]
    seller: str = ""
    network: str = ""
    city: str = ""
    state: str = ""
    driver: str = ""
    status: str = STATUS_PENDING
    note: str = ""
    attachments: Tuple[Attachment, ...] = ()
    edit_history: Tuple[EditHistoryEntry, ...] = ()
    owner_name: str = ""
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.items:
            raise InvalidRecordError("return record requires at least one line item")
        if self.status not in RETURN_STATUSES:
            raise InvalidRecordError(f"unknown return status: {self.status}")

    @property
    def total_quantity(self) -> float:
        return sum(float(item.quantity or 0.0) for item in self.items)

    @property
    def uploaded_urls(self) -> Tuple[str, ...]:
        return tuple(item.url for item in self.attachments if isinstance(item, UploadedAttachment))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "usuario_id": self.user_id,
            "usuario": self.owner_name or self.user_id,
            "data": self.date,
            "cliente": self.client,
            "vendedor": self.seller,
            "rede": self.network,
            "cidade": self.city,
            "uf": self.state,
            "motorista": self.driver,
            "status": self.status,
            "status_label": STATUS_LABELS.get(self.status, self.status),
            "observacao": self.note,
            "produtos": [item.to_dict() for item in self.items],
            "anexos": list(self.uploaded_urls),
            "editHistory": [entry.to_dict() for entry in self.edit_history],
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class OccurrenceRecord:
    id: int | None
    user_id: str
    date: str
    client: str
    seller: str = ""
    network: str = ""
    city: str = ""
    state: str = ""
    driver: str = ""
    recurrence: str = ""
    responsible_sector: str = ""
    occurrence_reason: str = ""
    summary: str = ""
    resolution: str = ""
    impact: str = ""
    owner_name: str = ""
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "usuario_id": self.user_id,
            "usuario": self.owner_name or self.user_id,
            "data": self.date,
            "cliente": self.client,
            "vendedor": self.seller,
            "rede": self.network,
            "cidade": self.city,
            "uf": self.state,
            "motorista": self.driver,
            "reincidencia": self.recurrence,
            "setor_responsavel": self.responsible_sector,
            "motivo_ocorrencia": self.occurrence_reason,
            "resumo_ocorrencia": self.summary,
            "tratativa": self.resolution,
            "impactos": self.impact,
            "created_at": self.created_at,
        }


def next_toggle_status(status: str) -> str:
    target = _STATUS_TOGGLE.get(status)
    if target is None:
        raise StatusTransitionError(status)
    return target


def can_transition(current: str, requested: str) -> bool:
    if current == requested:
        return False
    return _STATUS_TOGGLE.get(current) == requested


def with_status(record: ReturnRecord, new_status: str, actor: str, now: datetime | None = None) -> ReturnRecord:
    if not can_transition(record.status, new_status):
        raise StatusTransitionError(record.status, new_status)
    entry = EditHistoryEntry(
        actor=actor,
        timestamp=iso_timestamp(now),
        description=f"Status: {record.status} -> {new_status}",
    )
    return replace(record, status=new_status, edit_history=(*record.edit_history, entry))


def with_history(record: ReturnRecord, actor: str, description: str, now: datetime | None = None) -> ReturnRecord:
    entry = EditHistoryEntry(actor=actor, timestamp=iso_timestamp(now), description=description)
    return replace(record, edit_history=(*record.edit_history, entry))


def iso_timestamp(now: datetime | None = None) -> str:
    value = now or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_record_date(raw_value: Any) -> date | None:
    if isinstance(raw_value, datetime):
        return raw_value.date()
    if isinstance(raw_value, date):
        return raw_value
    if not isinstance(raw_value, str):
        return None
    value = raw_value.strip()
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        if value.endswith("Z"):
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None
