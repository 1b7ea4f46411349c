from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from painel.domain.records import (
    EditHistoryEntry,
    InvalidRecordError,
    LineItem,
    ReturnRecord,
    UploadedAttachment,
)
from painel.infrastructure.repositories.base import BaseRepository


logger = logging.getLogger("painel")

# Record attribute -> devolucoes column.
RETURN_COLUMNS: Dict[str, str] = {
    "date": "data",
    "client": "cliente",
    "seller": "vendedor",
    "network": "rede",
    "city": "cidade",
    "state": "uf",
    "driver": "motorista",
    "note": "observacao",
}


class ReturnRepository(BaseRepository):
    def list_snapshot(self, db) -> Tuple[ReturnRecord, ...]:
        rows = db.execute(
            """
            SELECT d.*, u.display_name AS owner_name
            FROM devolucoes d
            LEFT JOIN auth_users u ON u.email = d.usuario_id
            WHERE d.usuario_id = ?
            ORDER BY d.data DESC, d.id DESC
            """,
            (self.owner_id,),
        ).fetchall()
        return self._build_records(db, self.rows_to_dicts(rows))

    def get(self, db, return_id: int) -> ReturnRecord | None:
        row = db.execute(
            """
            SELECT d.*, u.display_name AS owner_name
            FROM devolucoes d
            LEFT JOIN auth_users u ON u.email = d.usuario_id
            WHERE d.id = ? AND d.usuario_id = ?
            LIMIT 1
            """,
            (return_id, self.owner_id),
        ).fetchone()
        if not row:
            return None
        records = self._build_records(db, [dict(row)])
        return records[0] if records else None

    def insert(self, db, record: ReturnRecord) -> int:
        cursor = db.execute(
            """
            INSERT INTO devolucoes (
                usuario_id, data, cliente, vendedor, rede, cidade, uf,
                motorista, status, observacao, anexos, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                self.owner_id,
                record.date,
                record.client,
                record.seller,
                record.network,
                record.city,
                record.state,
                record.driver,
                record.status,
                record.note,
                json.dumps(list(record.uploaded_urls)),
                record.created_at,
            ),
        )
        return_id = self.returned_id(cursor)
        self._insert_items(db, return_id, record.items)
        for entry in record.edit_history:
            self.append_history(db, return_id, entry)
        return return_id

    def update_fields(self, db, return_id: int, fields: Dict[str, Any]) -> bool:
        columns = {RETURN_COLUMNS[key]: value for key, value in fields.items() if key in RETURN_COLUMNS}
        if not columns:
            return self._owns(db, return_id)
        updates = [f"{column} = ?" for column in columns]
        params: List[Any] = list(columns.values())
        params.extend([return_id, self.owner_id])
        cursor = db.execute(
            f"""
            UPDATE devolucoes
            SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND usuario_id = ?
            """,
            tuple(params),
        )
        return cursor.rowcount > 0

    def replace_items(self, db, return_id: int, items: Sequence[LineItem]) -> bool:
        if not items:
            raise InvalidRecordError("return record requires at least one line item")
        if not self._owns(db, return_id):
            return False
        db.execute("DELETE FROM produtos_devolvidos WHERE devolucao_id = ?", (return_id,))
        self._insert_items(db, return_id, items)
        return True

    def append_attachments(self, db, return_id: int, urls: Iterable[str]) -> bool:
        row = db.execute(
            "SELECT anexos FROM devolucoes WHERE id = ? AND usuario_id = ?",
            (return_id, self.owner_id),
        ).fetchone()
        if not row:
            return False
        current = _decode_urls(row["anexos"])
        current.extend(url for url in urls if url)
        db.execute(
            """
            UPDATE devolucoes
            SET anexos = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND usuario_id = ?
            """,
            (json.dumps(current), return_id, self.owner_id),
        )
        return True

    def set_status(self, db, return_id: int, status: str) -> bool:
        cursor = db.execute(
            """
            UPDATE devolucoes
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND usuario_id = ?
            """,
            (status, return_id, self.owner_id),
        )
        return cursor.rowcount > 0

    def append_history(self, db, return_id: int, entry: EditHistoryEntry) -> None:
        db.execute(
            """
            INSERT INTO devolucao_historico (devolucao_id, usuario, data, alteracao)
            VALUES (?, ?, ?, ?)
            """,
            (return_id, entry.actor, entry.timestamp, entry.description),
        )

    def delete(self, db, return_id: int) -> bool:
        return self.delete_many(db, [return_id]) > 0

    def delete_many(self, db, return_ids: Sequence[int]) -> int:
        ids = [int(value) for value in return_ids]
        if not ids:
            return 0
        owned = db.execute(
            f"SELECT id FROM devolucoes WHERE id IN ({self.placeholders(ids)}) AND usuario_id = ?",
            self.scoped_params(ids),
        ).fetchall()
        owned_ids = [int(row["id"]) for row in owned]
        if not owned_ids:
            return 0
        marks = self.placeholders(owned_ids)
        db.execute(f"DELETE FROM devolucao_historico WHERE devolucao_id IN ({marks})", tuple(owned_ids))
        db.execute(f"DELETE FROM produtos_devolvidos WHERE devolucao_id IN ({marks})", tuple(owned_ids))
        db.execute(
            f"DELETE FROM devolucoes WHERE id IN ({marks}) AND usuario_id = ?",
            self.scoped_params(owned_ids),
        )
        return len(owned_ids)

    def _owns(self, db, return_id: int) -> bool:
        row = db.execute(
            "SELECT 1 FROM devolucoes WHERE id = ? AND usuario_id = ?",
            (return_id, self.owner_id),
        ).fetchone()
        return row is not None

    def _insert_items(self, db, return_id: int, items: Sequence[LineItem]) -> None:
        for position, item in enumerate(items):
            db.execute(
                """
                INSERT INTO produtos_devolvidos (
                    devolucao_id, posicao, codigo, produto, familia, grupo,
                    quantidade, tipo, motivo, estado, reincidencia
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    return_id,
                    position,
                    item.code,
                    item.product,
                    item.family,
                    item.group,
                    float(item.quantity or 0.0),
                    item.unit_type,
                    item.reason,
                    item.condition,
                    item.recurrence,
                ),
            )

    def _build_records(self, db, rows: List[dict]) -> Tuple[ReturnRecord, ...]:
        if not rows:
            return ()
        ids = [int(row["id"]) for row in rows]
        marks = self.placeholders(ids)
        item_rows = db.execute(
            f"""
            SELECT *
            FROM produtos_devolvidos
            WHERE devolucao_id IN ({marks})
            ORDER BY devolucao_id, posicao, id
            """,
            tuple(ids),
        ).fetchall()
        history_rows = db.execute(
            f"""
            SELECT *
            FROM devolucao_historico
            WHERE devolucao_id IN ({marks})
            ORDER BY devolucao_id, id
            """,
            tuple(ids),
        ).fetchall()

        items_by_return: Dict[int, List[LineItem]] = {}
        for item_row in item_rows:
            items_by_return.setdefault(int(item_row["devolucao_id"]), []).append(_line_item_from_row(item_row))
        history_by_return: Dict[int, List[EditHistoryEntry]] = {}
        for history_row in history_rows:
            history_by_return.setdefault(int(history_row["devolucao_id"]), []).append(
                EditHistoryEntry(
                    actor=history_row["usuario"],
                    timestamp=history_row["data"],
                    description=history_row["alteracao"],
                )
            )

        records: List[ReturnRecord] = []
        for row in rows:
            return_id = int(row["id"])
            items = items_by_return.get(return_id)
            if not items:
                logger.warning(
                    "return_without_items_skipped",
                    extra={"return_id": return_id, "owner_id": self.owner_id},
                )
                continue
            records.append(
                ReturnRecord(
                    id=return_id,
                    user_id=row["usuario_id"],
                    date=row["data"] or "",
                    client=row["cliente"] or "",
                    seller=row["vendedor"] or "",
                    network=row["rede"] or "",
                    city=row["cidade"] or "",
                    state=row["uf"] or "",
                    driver=row["motorista"] or "",
                    status=row["status"],
                    note=row["observacao"] or "",
                    items=tuple(items),
                    attachments=tuple(UploadedAttachment(url=url) for url in _decode_urls(row["anexos"])),
                    edit_history=tuple(history_by_return.get(return_id, ())),
                    owner_name=row.get("owner_name") or row["usuario_id"],
                    created_at=str(row["created_at"] or ""),
                )
            )
        return tuple(records)


def _line_item_from_row(row) -> LineItem:
    return LineItem(
        id=int(row["id"]),
        code=row["codigo"] or "",
        product=row["produto"] or "",
        family=row["familia"] or "",
        group=row["grupo"] or "",
        quantity=float(row["quantidade"] or 0.0),
        unit_type=row["tipo"] or "",
        reason=row["motivo"] or "",
        condition=row["estado"] or "",
        recurrence=row["reincidencia"] or "",
    )


def _decode_urls(raw_value: Any) -> List[str]:
    if not raw_value:
        return []
    try:
        decoded = json.loads(raw_value)
    except (TypeError, ValueError):
        logger.warning("return_attachments_undecodable", extra={"raw_value": str(raw_value)[:200]})
        return []
    if not isinstance(decoded, list):
        return []
    return [str(url) for url in decoded if url]
