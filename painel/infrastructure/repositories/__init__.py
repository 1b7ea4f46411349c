from painel.infrastructure.repositories.base import BaseRepository, OwnerScopeRequiredError
from painel.infrastructure.repositories.occurrence_repository import OccurrenceRepository
from painel.infrastructure.repositories.return_repository import ReturnRepository

__all__ = [
    "BaseRepository",
    "OccurrenceRepository",
    "OwnerScopeRequiredError",
    "ReturnRepository",
]
