from __future__ import annotations

from typing import Any

from reactions_api.schemas.base import Base
from reactions_api.utils.reaction_policy import ItemCounters, ReactionResult


class ReactionPost(Base):
    # Любое значение, а не ReactionKind: отсутствующая или недопустимая реакция дает 400, а не 422
    reaction: Any = None


class ReactionGet(Base):
    likes_count: int
    dislikes_count: int
    user_reaction: str

    @classmethod
    def from_result(cls, result: ReactionResult) -> ReactionGet:
        return cls(
            likes_count=result.likes_count,
            dislikes_count=result.dislikes_count,
            user_reaction=result.user_reaction.value if result.user_reaction else "",
        )


class CountersGet(Base):
    likes_count: int
    dislikes_count: int

    @classmethod
    def from_counters(cls, counters: ItemCounters) -> CountersGet:
        return cls.model_validate(counters)
