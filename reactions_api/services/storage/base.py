from __future__ import annotations

from typing import Callable, Protocol, TypeVar

from reactions_api.utils.reaction_policy import ItemCounters, ReactionKind, Transition


T = TypeVar("T")


class ReactionUnitOfWork(Protocol):
    """Операции с хранилищем внутри одной транзакции"""

    def get_counters(self, item_key: int, *, lock: bool = False) -> ItemCounters | None:
        """Счетчики поста или None, если поста нет. lock блокирует пост до конца транзакции"""

    def get_reaction(self, identity_key: int, item_key: int) -> ReactionKind | None:
        """Текущая реакция пользователя на пост"""

    def insert_reaction(self, identity_key: int, item_key: int, kind: ReactionKind) -> None: ...

    def update_reaction(self, identity_key: int, item_key: int, kind: ReactionKind) -> None: ...

    def delete_reaction(self, identity_key: int, item_key: int) -> None: ...

    def apply_counters(self, item_key: int, current: ItemCounters, transition: Transition) -> ItemCounters:
        """Применяет изменения счетчиков перехода и возвращает новые значения"""

    def scan_reactions(self, item_key: int) -> list[ReactionKind]:
        """Все реакции на пост"""

    def set_counters(self, item_key: int, counters: ItemCounters) -> None: ...


class ReactionBackend(Protocol):
    """Транзакционное хранилище реакций и счетчиков постов.

    run_atomic выполняет work в одной транзакции: либо фиксируются все изменения, либо ни одного.
    Конфликты параллельной записи переводятся в StorageConflict, остальные ошибки пробрасываются как есть.
    """

    def run_atomic(self, work: Callable[[ReactionUnitOfWork], T]) -> T: ...

    def close(self) -> None: ...
