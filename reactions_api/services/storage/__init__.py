from reactions_api.settings import Settings

from .base import ReactionBackend, ReactionUnitOfWork
from .firestore import FirestoreReactionBackend
from .sql import SqlReactionBackend


__all__ = [
    "FirestoreReactionBackend",
    "ReactionBackend",
    "ReactionUnitOfWork",
    "SqlReactionBackend",
    "create_backend",
]


def create_backend(settings: Settings) -> ReactionBackend:
    if settings.REACTION_BACKEND == "firestore":
        return FirestoreReactionBackend.from_project(
            settings.FIRESTORE_PROJECT, timeout=settings.STORAGE_TIMEOUT_SECONDS
        )
    return SqlReactionBackend.from_dsn(settings.DB_DSN, timeout=settings.STORAGE_TIMEOUT_SECONDS)
