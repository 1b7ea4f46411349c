from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Tuple
from zoneinfo import ZoneInfo

from flask import current_app, request

from painel.application.records_service import RecordsService
from painel.auth import current_owner
from painel.domain.contracts import Actor
from painel.domain.records import PendingAttachment
from painel.errors import ValidationError
from painel.infrastructure.attachment_storage import LocalAttachmentStorage


def current_actor() -> Actor:
    owner = current_owner()
    return Actor(owner_id=owner["id"], display_name=owner["display_name"])


def reference_now() -> datetime:
    provider = current_app.config.get("NOW_PROVIDER")
    if callable(provider):
        return provider()
    tz_name = str(current_app.config.get("APP_TIMEZONE") or "America/Sao_Paulo")
    return datetime.now(ZoneInfo(tz_name))


def attachment_storage() -> LocalAttachmentStorage:
    return LocalAttachmentStorage(
        current_app.config["UPLOAD_DIR"],
        current_app.config.get("ATTACHMENT_BASE_URL") or "/anexos",
    )


def records_service() -> RecordsService:
    return RecordsService(attachment_storage())


def request_payload() -> Tuple[Dict[str, Any], List[PendingAttachment]]:
    """JSON body, or a multipart form with a ``payload`` JSON field plus ``anexos`` files."""
    if request.mimetype == "multipart/form-data":
        raw_payload = request.form.get("payload") or "{}"
        try:
            payload = json.loads(raw_payload)
        except ValueError as exc:
            raise ValidationError(code="payload_invalid", message_key="payload_invalid", details=str(exc)) from exc
        if not isinstance(payload, dict):
            raise ValidationError(code="payload_invalid", message_key="payload_invalid")
        uploads = [
            PendingAttachment(
                filename=storage.filename or "anexo",
                content=storage.read(),
                content_type=storage.mimetype or "application/octet-stream",
            )
            for storage in request.files.getlist("anexos")
            if storage and storage.filename
        ]
        return payload, uploads

    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError(code="payload_invalid", message_key="payload_invalid")
    return payload, []
