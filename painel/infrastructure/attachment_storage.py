from __future__ import annotations

import logging
import os
import time

from werkzeug.utils import secure_filename

from painel.domain.records import PendingAttachment, UploadedAttachment
from painel.errors import StorageError


logger = logging.getLogger("painel")


class LocalAttachmentStorage:
    """Stores attachment bytes under ``upload_dir/<owner>/`` and hands back public URLs."""

    def __init__(self, upload_dir: str, base_url: str = "/anexos") -> None:
        self.upload_dir = os.path.abspath(upload_dir)
        self.base_url = (base_url or "/anexos").rstrip("/")

    def upload(self, owner_id: str, attachment: PendingAttachment) -> UploadedAttachment:
        owner_dir = secure_filename(str(owner_id or "")) or "anon"
        name = secure_filename(attachment.filename or "") or "anexo"
        relative_path = f"{owner_dir}/{int(time.time() * 1000)}-{name}"
        target = os.path.join(self.upload_dir, owner_dir, relative_path.split("/", 1)[1])
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as handle:
                handle.write(attachment.content)
        except OSError as exc:
            logger.error(
                "attachment_upload_failed",
                extra={"owner_id": owner_id, "attachment_name": name, "details": str(exc)},
            )
            raise StorageError(
                code="attachment_upload_failed",
                message_key="attachment_upload_failed",
                details=str(exc),
            ) from exc
        logger.info(
            "attachment_uploaded",
            extra={"owner_id": owner_id, "attachment_path": relative_path, "size_bytes": len(attachment.content)},
        )
        return UploadedAttachment(url=f"{self.base_url}/{relative_path}")

    def resolve(self, relative_path: str) -> str:
        return os.path.join(self.upload_dir, relative_path)
