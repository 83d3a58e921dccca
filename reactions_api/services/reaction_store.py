from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Callable, TypeVar

from reactions_api.exceptions import ItemNotFound, StorageConflict, TransientStorageConflict
from reactions_api.services.storage import ReactionBackend, ReactionUnitOfWork
from reactions_api.utils.reaction_policy import (
    ItemCounters,
    ReactionKind,
    ReactionResult,
    TransitionType,
    decide,
)


T = TypeVar("T")

logger = logging.getLogger(__name__)


class ReactionStore:
    """
    Единственное место, где меняются реакции пользователей и счетчики постов.

    Каждая операция выполняется одной транзакцией хранилища. Если хранилище сообщает о конфликте
    с параллельной записью, транзакция целиком повторяется не более max_attempts раз,
    после чего выбрасывается TransientStorageConflict. Остальные ошибки хранилища пробрасываются как есть,
    транзакция при этом откатывается.
    """

    def __init__(self, backend: ReactionBackend, *, max_attempts: int = 5, retry_delay: float = 0.05) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        self._backend = backend
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    def set_reaction(self, identity_key: int, item_key: int, requested: ReactionKind | str) -> ReactionResult:
        """
        Ставит, меняет или снимает (при повторе той же реакции) реакцию пользователя на пост.

        Возвращает счетчики поста после изменения и итоговую реакцию пользователя.
        """
        kind = ReactionKind.parse(requested)

        def work(uow: ReactionUnitOfWork) -> ReactionResult:
            counters = uow.get_counters(item_key)
            if counters is None:
                raise ItemNotFound(item_key)
            existing = uow.get_reaction(identity_key, item_key)
            transition = decide(existing, kind)
            if transition.type == TransitionType.CREATE:
                uow.insert_reaction(identity_key, item_key, kind)
            elif transition.type == TransitionType.CLEAR:
                uow.delete_reaction(identity_key, item_key)
            else:
                uow.update_reaction(identity_key, item_key, kind)
            counters = uow.apply_counters(item_key, counters, transition)
            return ReactionResult.from_counters(counters, transition.resulting)

        result = self._run(work, identity_key=identity_key, item_key=item_key)
        logger.debug(f"Reaction of user {identity_key} on post {item_key} is now {result}")
        return result

    def get_reaction(self, identity_key: int, item_key: int) -> ReactionResult:
        """Счетчики поста и текущая реакция пользователя, без изменений"""

        def work(uow: ReactionUnitOfWork) -> ReactionResult:
            counters = uow.get_counters(item_key)
            if counters is None:
                raise ItemNotFound(item_key)
            return ReactionResult.from_counters(counters, uow.get_reaction(identity_key, item_key))

        return self._run(work, identity_key=identity_key, item_key=item_key)

    def recount(self, item_key: int) -> ItemCounters:
        """Пересчитывает счетчики поста по всем записям реакций и сохраняет их"""

        def work(uow: ReactionUnitOfWork) -> ItemCounters:
            stored = uow.get_counters(item_key, lock=True)
            if stored is None:
                raise ItemNotFound(item_key)
            kinds = Counter(uow.scan_reactions(item_key))
            counters = ItemCounters(likes_count=kinds[ReactionKind.LIKE], dislikes_count=kinds[ReactionKind.DISLIKE])
            if counters != stored:
                logger.warning(f"Counters of post {item_key} drifted: stored {stored}, recounted {counters}")
                uow.set_counters(item_key, counters)
            return counters

        return self._run(work, item_key=item_key)

    def _run(self, work: Callable[[ReactionUnitOfWork], T], **context) -> T:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._backend.run_atomic(work)
            except StorageConflict as exc:
                logger.warning(f"Storage conflict {context}, attempt {attempt}/{self._max_attempts}: {exc}")
                if attempt < self._max_attempts:
                    time.sleep(self._retry_delay * attempt)
        logger.error(f"Giving up after {self._max_attempts} conflicting attempts {context}")
        raise TransientStorageConflict(self._max_attempts)
