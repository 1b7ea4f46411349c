from __future__ import annotations

from typing import Any, Iterable, Sequence


class OwnerScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without the owning user."""


class BaseRepository:
    owner_column = "usuario_id"

    def __init__(self, *, owner_id: str | None = None) -> None:
        scope = str(owner_id or "").strip()
        if not scope:
            raise OwnerScopeRequiredError("owner_id is required for repository access")
        self.owner_id = scope

    def build_owner_clause(self, *, table_alias: str | None = None) -> str:
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{self.owner_column} = ?"

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.owner_id)

    @staticmethod
    def placeholders(values: Sequence[Any]) -> str:
        return ", ".join("?" for _ in values)

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def returned_id(cursor) -> int:
        # Drain the cursor so sqlite finishes the INSERT ... RETURNING statement before commit.
        row = cursor.fetchall()[0]
        return int(row["id"] if isinstance(row, dict) else row[0])
