from __future__ import annotations

from typing import Callable, TypeVar

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from reactions_api.exceptions import StorageConflict
from reactions_api.utils.reaction_policy import ItemCounters, ReactionKind, Transition

from .base import ReactionUnitOfWork


T = TypeVar("T")


POSTS_COLLECTION = "posts"
REACTIONS_COLLECTION = "post_reactions"


def reaction_document_id(identity_key: int, item_key: int) -> str:
    """Один документ на пару пользователь-пост, так хранилище само не даст создать вторую реакцию"""
    return f"{identity_key}_{item_key}"


class FirestoreUnitOfWork(ReactionUnitOfWork):
    def __init__(self, client: firestore.Client, transaction: firestore.Transaction, timeout: float) -> None:
        self._client = client
        self._transaction = transaction
        self._timeout = timeout

    def _post_ref(self, item_key: int):
        return self._client.collection(POSTS_COLLECTION).document(str(item_key))

    def _reaction_ref(self, identity_key: int, item_key: int):
        return self._client.collection(REACTIONS_COLLECTION).document(reaction_document_id(identity_key, item_key))

    def get_counters(self, item_key: int, *, lock: bool = False) -> ItemCounters | None:
        # Документы, прочитанные в транзакции, и так защищены от параллельной записи
        snapshot = self._post_ref(item_key).get(transaction=self._transaction, timeout=self._timeout)
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        if data.get("is_deleted"):
            return None
        return ItemCounters(
            likes_count=int(data.get("likes_count", 0)),
            dislikes_count=int(data.get("dislikes_count", 0)),
        )

    def get_reaction(self, identity_key: int, item_key: int) -> ReactionKind | None:
        snapshot = self._reaction_ref(identity_key, item_key).get(transaction=self._transaction, timeout=self._timeout)
        if not snapshot.exists:
            return None
        return ReactionKind(snapshot.to_dict()["reaction"])

    def insert_reaction(self, identity_key: int, item_key: int, kind: ReactionKind) -> None:
        self._transaction.create(
            self._reaction_ref(identity_key, item_key),
            {"user_id": identity_key, "post_id": item_key, "reaction": kind.value},
        )

    def update_reaction(self, identity_key: int, item_key: int, kind: ReactionKind) -> None:
        self._transaction.update(self._reaction_ref(identity_key, item_key), {"reaction": kind.value})

    def delete_reaction(self, identity_key: int, item_key: int) -> None:
        self._transaction.delete(self._reaction_ref(identity_key, item_key))

    def apply_counters(self, item_key: int, current: ItemCounters, transition: Transition) -> ItemCounters:
        # После записи читать в транзакции Firestore нельзя, считаем от прочитанных значений
        counters = current.apply(transition)
        self.set_counters(item_key, counters)
        return counters

    def scan_reactions(self, item_key: int) -> list[ReactionKind]:
        query = self._client.collection(REACTIONS_COLLECTION).where(filter=FieldFilter("post_id", "==", item_key))
        return [
            ReactionKind(snapshot.to_dict()["reaction"])
            for snapshot in query.stream(transaction=self._transaction, timeout=self._timeout)
        ]

    def set_counters(self, item_key: int, counters: ItemCounters) -> None:
        self._transaction.update(
            self._post_ref(item_key),
            {"likes_count": counters.likes_count, "dislikes_count": counters.dislikes_count},
        )


class FirestoreReactionBackend:
    """Реакции в Firestore.

    Транзакция делает одну попытку, повторами при конфликтах управляет ReactionStore.
    """

    def __init__(self, client: firestore.Client, *, timeout: float) -> None:
        self._client = client
        self._timeout = timeout

    @classmethod
    def from_project(cls, project: str | None, *, timeout: float) -> FirestoreReactionBackend:
        return cls(firestore.Client(project=project), timeout=timeout)

    def run_atomic(self, work: Callable[[ReactionUnitOfWork], T]) -> T:
        @firestore.transactional
        def _run(transaction):
            return work(FirestoreUnitOfWork(self._client, transaction, self._timeout))

        try:
            return _run(self._client.transaction(max_attempts=1))
        except (gcp_exceptions.Conflict, gcp_exceptions.DeadlineExceeded) as exc:
            # Aborted и AlreadyExists наследуются от Conflict
            raise StorageConflict(str(exc)) from exc
        except ValueError as exc:
            # Так firestore сообщает, что исчерпал попытки закоммитить транзакцию
            if isinstance(exc.__cause__, gcp_exceptions.Conflict):
                raise StorageConflict(str(exc.__cause__)) from exc
            raise

    def close(self) -> None:
        self._client.close()
