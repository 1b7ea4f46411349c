from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from painel.domain.records import OccurrenceRecord
from painel.infrastructure.repositories.base import BaseRepository


OCCURRENCE_COLUMNS: Dict[str, str] = {
    "date": "data",
    "client": "cliente",
    "seller": "vendedor",
    "network": "rede",
    "city": "cidade",
    "state": "uf",
    "driver": "motorista",
    "recurrence": "reincidencia",
    "responsible_sector": "setor_responsavel",
    "occurrence_reason": "motivo_ocorrencia",
    "summary": "resumo_ocorrencia",
    "resolution": "tratativa",
    "impact": "impactos",
}


class OccurrenceRepository(BaseRepository):
    def list_snapshot(self, db) -> Tuple[OccurrenceRecord, ...]:
        rows = db.execute(
            """
            SELECT o.*, u.display_name AS owner_name
            FROM ocorrencias o
            LEFT JOIN auth_users u ON u.email = o.usuario_id
            WHERE o.usuario_id = ?
            ORDER BY o.created_at DESC, o.id DESC
            """,
            (self.owner_id,),
        ).fetchall()
        return tuple(_occurrence_from_row(dict(row)) for row in rows)

    def get(self, db, occurrence_id: int) -> OccurrenceRecord | None:
        row = db.execute(
            """
            SELECT o.*, u.display_name AS owner_name
            FROM ocorrencias o
            LEFT JOIN auth_users u ON u.email = o.usuario_id
            WHERE o.id = ? AND o.usuario_id = ?
            LIMIT 1
            """,
            (occurrence_id, self.owner_id),
        ).fetchone()
        return _occurrence_from_row(dict(row)) if row else None

    def insert(self, db, record: OccurrenceRecord) -> int:
        columns = list(OCCURRENCE_COLUMNS.values())
        values: List[Any] = [getattr(record, attribute) for attribute in OCCURRENCE_COLUMNS]
        columns.extend(["usuario_id", "created_at"])
        values.extend([self.owner_id, record.created_at])
        cursor = db.execute(
            f"""
            INSERT INTO ocorrencias ({", ".join(columns)})
            VALUES ({self.placeholders(values)})
            RETURNING id
            """,
            tuple(values),
        )
        occurrence_id = self.returned_id(cursor)
        return occurrence_id

    def update_fields(self, db, occurrence_id: int, fields: Dict[str, Any]) -> bool:
        columns = {OCCURRENCE_COLUMNS[key]: value for key, value in fields.items() if key in OCCURRENCE_COLUMNS}
        if not columns:
            return self.get(db, occurrence_id) is not None
        updates = [f"{column} = ?" for column in columns]
        params: List[Any] = list(columns.values())
        params.extend([occurrence_id, self.owner_id])
        cursor = db.execute(
            f"""
            UPDATE ocorrencias
            SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND usuario_id = ?
            """,
            tuple(params),
        )
        return cursor.rowcount > 0

    def delete(self, db, occurrence_id: int) -> bool:
        return self.delete_many(db, [occurrence_id]) > 0

    def delete_many(self, db, occurrence_ids: Sequence[int]) -> int:
        ids = [int(value) for value in occurrence_ids]
        if not ids:
            return 0
        cursor = db.execute(
            f"DELETE FROM ocorrencias WHERE id IN ({self.placeholders(ids)}) AND usuario_id = ?",
            self.scoped_params(ids),
        )
        return max(0, int(cursor.rowcount))


def _occurrence_from_row(row: dict) -> OccurrenceRecord:
    return OccurrenceRecord(
        id=int(row["id"]),
        user_id=row["usuario_id"],
        date=row["data"] or "",
        client=row["cliente"] or "",
        seller=row["vendedor"] or "",
        network=row["rede"] or "",
        city=row["cidade"] or "",
        state=row["uf"] or "",
        driver=row["motorista"] or "",
        recurrence=row["reincidencia"] or "",
        responsible_sector=row["setor_responsavel"] or "",
        occurrence_reason=row["motivo_ocorrencia"] or "",
        summary=row["resumo_ocorrencia"] or "",
        resolution=row["tratativa"] or "",
        impact=row["impactos"] or "",
        owner_name=row.get("owner_name") or row["usuario_id"],
        created_at=str(row["created_at"] or ""),
    )
