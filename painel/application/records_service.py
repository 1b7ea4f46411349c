from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from painel.domain.contracts import Actor, OccurrenceInput, ReturnInput, ServiceOutput
from painel.domain.records import (
    STATUS_PENDING,
    EditHistoryEntry,
    InvalidRecordError,
    LineItem,
    OccurrenceRecord,
    PendingAttachment,
    ReturnRecord,
    StatusTransitionError,
    UploadedAttachment,
    iso_timestamp,
    next_toggle_status,
    parse_record_date,
    with_status,
)
from painel.db import transaction
from painel.errors import NotFoundError, ValidationError
from painel.infrastructure.attachment_storage import LocalAttachmentStorage
from painel.infrastructure.repositories import OccurrenceRepository, ReturnRepository
from painel.ui_strings import success_message


logger = logging.getLogger("painel")

RETURN_FIELD_KEYS: Dict[str, str] = {
    "data": "date",
    "cliente": "client",
    "vendedor": "seller",
    "rede": "network",
    "cidade": "city",
    "uf": "state",
    "motorista": "driver",
    "observacao": "note",
}

OCCURRENCE_FIELD_KEYS: Dict[str, str] = {
    "data": "date",
    "cliente": "client",
    "vendedor": "seller",
    "rede": "network",
    "cidade": "city",
    "uf": "state",
    "motorista": "driver",
    "reincidencia": "recurrence",
    "setor_responsavel": "responsible_sector",
    "motivo_ocorrencia": "occurrence_reason",
    "resumo_ocorrencia": "summary",
    "tratativa": "resolution",
    "impactos": "impact",
}

ITEM_FIELD_KEYS: Dict[str, str] = {
    "codigo": "code",
    "produto": "product",
    "familia": "family",
    "grupo": "group",
    "tipo": "unit_type",
    "motivo": "reason",
    "estado": "condition",
    "reincidencia": "recurrence",
}


def _normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", "."))
    except (TypeError, ValueError):
        return None


def _parse_fields(payload: Mapping[str, Any], keys: Mapping[str, str], *, partial: bool) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for key, attribute in keys.items():
        if key not in payload:
            continue
        fields[attribute] = _normalize_text(payload.get(key))

    if "date" in fields:
        parsed = parse_record_date(fields["date"])
        if parsed is None:
            raise ValidationError(code="date_invalid", message_key="date_invalid", payload={"field": "data"})
        fields["date"] = parsed.isoformat()
    elif not partial:
        raise ValidationError(code="date_invalid", message_key="date_invalid", payload={"field": "data"})

    if "client" in fields and not fields["client"]:
        raise ValidationError(code="client_required", message_key="client_required", payload={"field": "cliente"})
    if not partial and "client" not in fields:
        raise ValidationError(code="client_required", message_key="client_required", payload={"field": "cliente"})
    return fields


def parse_line_items(raw_items: Any) -> Tuple[LineItem, ...]:
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError(code="items_required", message_key="items_required")

    items: List[LineItem] = []
    for index, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, Mapping):
            raise ValidationError(code="items_required", message_key="items_required", payload={"item": index})
        values = {attribute: _normalize_text(raw_item.get(key)) for key, attribute in ITEM_FIELD_KEYS.items()}
        if not values["product"]:
            raise ValidationError(code="product_required", message_key="product_required", payload={"item": index})
        quantity = _safe_float(raw_item.get("quantidade"))
        if quantity is None or quantity < 0:
            raise ValidationError(code="quantity_invalid", message_key="quantity_invalid", payload={"item": index})
        items.append(LineItem(quantity=quantity, **values))
    return tuple(items)


def parse_return_input(
    payload: Mapping[str, Any] | None,
    uploads: Sequence[PendingAttachment] = (),
    *,
    partial: bool = False,
) -> ReturnInput:
    body = payload or {}
    fields = _parse_fields(body, RETURN_FIELD_KEYS, partial=partial)

    items = None
    if "produtos" in body or not partial:
        items = parse_line_items(body.get("produtos"))

    # Status only moves through the status toggle route.
    if _normalize_text(body.get("status")):
        raise ValidationError(code="status_not_editable", message_key="status_not_editable", payload={"field": "status"})
    return ReturnInput(fields=fields, items=items, uploads=tuple(uploads))


def parse_occurrence_input(payload: Mapping[str, Any] | None, *, partial: bool = False) -> OccurrenceInput:
    return OccurrenceInput(fields=_parse_fields(payload or {}, OCCURRENCE_FIELD_KEYS, partial=partial))


def parse_id_list(payload: Mapping[str, Any] | None) -> List[int]:
    raw_ids = (payload or {}).get("ids")
    if not isinstance(raw_ids, (list, tuple)):
        raise ValidationError(code="ids_required", message_key="ids_required")
    ids: List[int] = []
    for raw in raw_ids:
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            raise ValidationError(code="ids_required", message_key="ids_required") from None
    if not ids:
        raise ValidationError(code="ids_required", message_key="ids_required")
    return ids


class RecordsService:
    def __init__(self, storage: LocalAttachmentStorage) -> None:
        self.storage = storage

    def return_snapshot(self, db, actor: Actor) -> Tuple[ReturnRecord, ...]:
        return ReturnRepository(owner_id=actor.owner_id).list_snapshot(db)

    def occurrence_snapshot(self, db, actor: Actor) -> Tuple[OccurrenceRecord, ...]:
        return OccurrenceRepository(owner_id=actor.owner_id).list_snapshot(db)

    def get_return(self, db, actor: Actor, return_id: int) -> ReturnRecord:
        record = ReturnRepository(owner_id=actor.owner_id).get(db, return_id)
        if record is None:
            raise NotFoundError(code="return_not_found", message_key="return_not_found")
        return record

    def get_occurrence(self, db, actor: Actor, occurrence_id: int) -> OccurrenceRecord:
        record = OccurrenceRepository(owner_id=actor.owner_id).get(db, occurrence_id)
        if record is None:
            raise NotFoundError(code="occurrence_not_found", message_key="occurrence_not_found")
        return record

    def create_return(self, db, actor: Actor, return_input: ReturnInput, now: datetime) -> ServiceOutput:
        if not return_input.items:
            raise ValidationError(code="items_required", message_key="items_required")

        uploaded = self._upload_all(actor, return_input.uploads)
        try:
            draft = ReturnRecord(
                id=None,
                user_id=actor.owner_id,
                items=return_input.items,
                status=STATUS_PENDING,
                attachments=tuple(uploaded),
                owner_name=actor.display_name,
                created_at=iso_timestamp(now),
                **return_input.fields,
            )
        except InvalidRecordError as exc:
            raise ValidationError(code="payload_invalid", message_key="payload_invalid", details=str(exc)) from exc

        repository = ReturnRepository(owner_id=actor.owner_id)
        with transaction(db):
            return_id = repository.insert(db, draft)
        logger.info(
            "return_created",
            extra={"return_id": return_id, "owner_id": actor.owner_id, "items": len(draft.items)},
        )
        created = repository.get(db, return_id)
        return ServiceOutput(
            payload={"devolucao": created.to_dict() if created else None, "message": success_message("return_saved")},
            status_code=201,
        )

    def change_return_status(
        self,
        db,
        actor: Actor,
        return_id: int,
        now: datetime,
        requested: str | None = None,
    ) -> ServiceOutput:
        record = self.get_return(db, actor, return_id)
        try:
            target = requested or next_toggle_status(record.status)
            updated = with_status(record, target, actor.display_name, now)
        except StatusTransitionError as exc:
            raise ValidationError(
                code="status_transition_invalid",
                message_key="status_transition_invalid",
                details=str(exc),
                payload={"status": record.status},
            ) from exc

        repository = ReturnRepository(owner_id=actor.owner_id)
        with transaction(db):
            repository.set_status(db, return_id, updated.status)
            repository.append_history(db, return_id, updated.edit_history[-1])
        logger.info(
            "return_status_changed",
            extra={"return_id": return_id, "from_status": record.status, "to_status": updated.status},
        )
        refreshed = repository.get(db, return_id)
        return ServiceOutput(
            payload={"devolucao": refreshed.to_dict() if refreshed else None, "message": success_message("status_updated")}
        )

    def update_return(self, db, actor: Actor, return_id: int, return_input: ReturnInput, now: datetime) -> ServiceOutput:
        record = self.get_return(db, actor, return_id)
        repository = ReturnRepository(owner_id=actor.owner_id)

        changed = [
            key
            for key, attribute in RETURN_FIELD_KEYS.items()
            if attribute in return_input.fields and return_input.fields[attribute] != getattr(record, attribute)
        ]
        items_changed = return_input.items is not None and return_input.items != _without_ids(record.items)
        if not changed and not items_changed and not return_input.uploads:
            raise ValidationError(code="no_changes", message_key="no_changes")

        # Files go first: a failed upload must leave the record and its history untouched.
        uploaded = self._upload_all(actor, return_input.uploads)

        descriptions: List[str] = []
        stamp = iso_timestamp(now)
        with transaction(db):
            if changed:
                updates = {RETURN_FIELD_KEYS[key]: return_input.fields[RETURN_FIELD_KEYS[key]] for key in changed}
                repository.update_fields(db, return_id, updates)
                descriptions.append("Campos alterados: " + ", ".join(changed))
            if items_changed:
                repository.replace_items(db, return_id, return_input.items)
                descriptions.append(f"Produtos atualizados ({len(return_input.items)} itens)")
            if uploaded:
                repository.append_attachments(db, return_id, [attachment.url for attachment in uploaded])
                descriptions.append(f"Anexos adicionados: {len(uploaded)}")
            for description in descriptions:
                repository.append_history(db, return_id, _history(actor, stamp, description))
        logger.info("return_updated", extra={"return_id": return_id, "changes": descriptions})

        refreshed = repository.get(db, return_id)
        return ServiceOutput(
            payload={"devolucao": refreshed.to_dict() if refreshed else None, "message": success_message("return_updated")}
        )

    def delete_return(self, db, actor: Actor, return_id: int) -> ServiceOutput:
        with transaction(db):
            deleted = ReturnRepository(owner_id=actor.owner_id).delete(db, return_id)
        if not deleted:
            raise NotFoundError(code="return_not_found", message_key="return_not_found")
        logger.info("return_deleted", extra={"return_id": return_id, "owner_id": actor.owner_id})
        return ServiceOutput(payload={"deleted": 1, "message": success_message("return_deleted")})

    def delete_returns(self, db, actor: Actor, return_ids: Iterable[int]) -> ServiceOutput:
        with transaction(db):
            deleted = ReturnRepository(owner_id=actor.owner_id).delete_many(db, list(return_ids))
        logger.info("returns_deleted", extra={"deleted": deleted, "owner_id": actor.owner_id})
        return ServiceOutput(payload={"deleted": deleted, "message": success_message("returns_deleted")})

    def create_occurrence(self, db, actor: Actor, occurrence_input: OccurrenceInput, now: datetime) -> ServiceOutput:
        draft = OccurrenceRecord(
            id=None,
            user_id=actor.owner_id,
            owner_name=actor.display_name,
            created_at=iso_timestamp(now),
            **occurrence_input.fields,
        )
        repository = OccurrenceRepository(owner_id=actor.owner_id)
        with transaction(db):
            occurrence_id = repository.insert(db, draft)
        logger.info("occurrence_created", extra={"occurrence_id": occurrence_id, "owner_id": actor.owner_id})
        created = repository.get(db, occurrence_id)
        return ServiceOutput(
            payload={"ocorrencia": created.to_dict() if created else None, "message": success_message("occurrence_saved")},
            status_code=201,
        )

    def update_occurrence(self, db, actor: Actor, occurrence_id: int, occurrence_input: OccurrenceInput) -> ServiceOutput:
        record = self.get_occurrence(db, actor, occurrence_id)
        changes = {
            attribute: value
            for attribute, value in occurrence_input.fields.items()
            if getattr(record, attribute) != value
        }
        if not changes:
            raise ValidationError(code="no_changes", message_key="no_changes")
        repository = OccurrenceRepository(owner_id=actor.owner_id)
        with transaction(db):
            repository.update_fields(db, occurrence_id, changes)
        logger.info("occurrence_updated", extra={"occurrence_id": occurrence_id, "fields": sorted(changes)})
        refreshed = repository.get(db, occurrence_id)
        return ServiceOutput(
            payload={
                "ocorrencia": refreshed.to_dict() if refreshed else None,
                "message": success_message("occurrence_updated"),
            }
        )

    def delete_occurrence(self, db, actor: Actor, occurrence_id: int) -> ServiceOutput:
        with transaction(db):
            deleted = OccurrenceRepository(owner_id=actor.owner_id).delete(db, occurrence_id)
        if not deleted:
            raise NotFoundError(code="occurrence_not_found", message_key="occurrence_not_found")
        logger.info("occurrence_deleted", extra={"occurrence_id": occurrence_id, "owner_id": actor.owner_id})
        return ServiceOutput(payload={"deleted": 1, "message": success_message("occurrence_deleted")})

    def delete_occurrences(self, db, actor: Actor, occurrence_ids: Iterable[int]) -> ServiceOutput:
        with transaction(db):
            deleted = OccurrenceRepository(owner_id=actor.owner_id).delete_many(db, list(occurrence_ids))
        logger.info("occurrences_deleted", extra={"deleted": deleted, "owner_id": actor.owner_id})
        return ServiceOutput(payload={"deleted": deleted, "message": success_message("occurrences_deleted")})

    def _upload_all(self, actor: Actor, uploads: Sequence[PendingAttachment]) -> List[UploadedAttachment]:
        return [self.storage.upload(actor.owner_id, attachment) for attachment in uploads]


def _without_ids(items: Sequence[LineItem]) -> Tuple[LineItem, ...]:
    return tuple(replace(item, id=None) for item in items)


def _history(actor: Actor, stamp: str, description: str) -> EditHistoryEntry:
    return EditHistoryEntry(actor=actor.display_name, timestamp=stamp, description=description)
