"""Переходы состояния реакции пользователя на пост.

Чистые функции без обращений к хранилищу: по текущей реакции пользователя и запрошенной
определяют, что сделать с записью реакции и как изменить счетчики поста.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from reactions_api.exceptions import InvalidReaction


class ReactionKind(str, Enum):
    LIKE: str = "like"
    DISLIKE: str = "dislike"

    @classmethod
    def parse(cls, value: object) -> ReactionKind:
        """Приводит пользовательский ввод к реакции, иначе InvalidReaction"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidReaction(value)


class TransitionType(str, Enum):
    CREATE: str = "create"
    CLEAR: str = "clear"
    SWITCH: str = "switch"


@dataclass(frozen=True)
class Transition:
    type: TransitionType
    likes_delta: int
    dislikes_delta: int
    resulting: ReactionKind | None


@dataclass(frozen=True)
class ItemCounters:
    likes_count: int = 0
    dislikes_count: int = 0

    def apply(self, transition: Transition) -> ItemCounters:
        return ItemCounters(
            likes_count=_apply_delta(self.likes_count, transition.likes_delta),
            dislikes_count=_apply_delta(self.dislikes_count, transition.dislikes_delta),
        )


@dataclass(frozen=True)
class ReactionResult:
    likes_count: int
    dislikes_count: int
    user_reaction: ReactionKind | None

    @classmethod
    def from_counters(cls, counters: ItemCounters, user_reaction: ReactionKind | None) -> ReactionResult:
        return cls(
            likes_count=counters.likes_count,
            dislikes_count=counters.dislikes_count,
            user_reaction=user_reaction,
        )


def _apply_delta(value: int, delta: int) -> int:
    # Уменьшаем только положительный счетчик
    if delta < 0:
        return value + delta if value > 0 else 0
    return value + delta


def _deltas(kind: ReactionKind, sign: int) -> tuple[int, int]:
    if kind == ReactionKind.LIKE:
        return sign, 0
    return 0, sign


def decide(existing: ReactionKind | None, requested: ReactionKind) -> Transition:
    """
    Определяет переход для реакции requested при текущей реакции existing.

    - реакции нет: создаем запись, +1 к счетчику requested
    - та же реакция: удаляем запись (toggle-off), -1 к счетчику requested
    - другая реакция: меняем запись, -1 к старому счетчику и +1 к новому
    """
    if existing is None:
        likes, dislikes = _deltas(requested, 1)
        return Transition(TransitionType.CREATE, likes, dislikes, requested)

    if existing == requested:
        likes, dislikes = _deltas(requested, -1)
        return Transition(TransitionType.CLEAR, likes, dislikes, None)

    old_likes, old_dislikes = _deltas(existing, -1)
    new_likes, new_dislikes = _deltas(requested, 1)
    return Transition(TransitionType.SWITCH, old_likes + new_likes, old_dislikes + new_dislikes, requested)
