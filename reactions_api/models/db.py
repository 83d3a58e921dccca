from __future__ import annotations

import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as DbEnum
from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reactions_api.utils.reaction_policy import ReactionKind

from .base import BaseDbModel


class Post(BaseDbModel):
    """Пост блога. Здесь описаны только поля, нужные для учета реакций"""

    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="ck_post_likes_count_non_negative"),
        CheckConstraint("dislikes_count >= 0", name="ck_post_dislikes_count_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    author_id: Mapped[int] = mapped_column(Integer, nullable=True)
    likes_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default='0', default=0, comment="Число лайков, поддерживается ReactionStore"
    )
    dislikes_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default='0', default=0, comment="Число дизлайков, поддерживается ReactionStore"
    )
    create_ts: Mapped[datetime.datetime] = mapped_column(DateTime, default=datetime.datetime.utcnow, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PostReaction(BaseDbModel):
    """Текущая реакция пользователя на пост. Отсутствие строки означает отсутствие реакции"""

    __table_args__ = (UniqueConstraint("user_id", "post_id", name="uq_post_reaction_user_post"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    post_id: Mapped[int] = mapped_column(Integer, ForeignKey("post.id"), nullable=False, index=True)
    reaction: Mapped[ReactionKind] = mapped_column(
        DbEnum(ReactionKind, native_enum=False, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False,
    )
    create_ts: Mapped[datetime.datetime] = mapped_column(DateTime, default=datetime.datetime.utcnow, nullable=False)
    update_ts: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow, nullable=False
    )
