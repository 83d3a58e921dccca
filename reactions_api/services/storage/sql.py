from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy import case, create_engine, delete, event, insert, select, update
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from reactions_api.exceptions import ItemNotFound, StorageConflict
from reactions_api.models import Post, PostReaction
from reactions_api.utils.reaction_policy import ItemCounters, ReactionKind, Transition

from .base import ReactionUnitOfWork


T = TypeVar("T")


# unique_violation, serialization_failure, deadlock_detected, lock_not_available, query_canceled
CONFLICT_PGCODES = {"23505", "40001", "40P01", "55P03", "57014"}


def create_reaction_engine(dsn: str, *, timeout: float) -> Engine:
    """Создает engine, в котором транзакции с реакциями сериализуются по ключам.

    В Postgres блокировки ограничены lock_timeout/statement_timeout.
    В SQLite нет построчных блокировок, поэтому каждая транзакция начинается с BEGIN IMMEDIATE
    и ждет блокировку записи не дольше timeout.
    """
    url = make_url(dsn)
    if url.get_backend_name() == "sqlite":
        engine = create_engine(url, connect_args={"timeout": timeout, "check_same_thread": False})

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    if url.get_backend_name() == "postgresql":
        timeout_ms = int(timeout * 1000)
        return create_engine(
            url,
            pool_pre_ping=True,
            connect_args={"options": f"-c lock_timeout={timeout_ms} -c statement_timeout={timeout_ms}"},
        )
    return create_engine(url, pool_pre_ping=True)


def is_conflict(exc: DBAPIError) -> bool:
    """Можно ли повторить транзакцию, упавшую с exc"""
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode:
        return pgcode in CONFLICT_PGCODES
    message = str(orig).lower()
    return "unique constraint failed" in message or "database is locked" in message


def _shifted(column, delta: int):
    if delta < 0:
        return case((column > 0, column + delta), else_=0)
    return column + delta


class SqlUnitOfWork(ReactionUnitOfWork):
    def __init__(self, session: Session) -> None:
        self._session = session

    def _reaction_filter(self, identity_key: int, item_key: int):
        return PostReaction.user_id == identity_key, PostReaction.post_id == item_key

    def get_counters(self, item_key: int, *, lock: bool = False) -> ItemCounters | None:
        query = (
            Post.query(session=self._session)
            .filter(Post.id == item_key)
            .with_entities(Post.likes_count, Post.dislikes_count)
        )
        if lock:
            query = query.with_for_update()
        row = query.one_or_none()
        if row is None:
            return None
        return ItemCounters(likes_count=row.likes_count, dislikes_count=row.dislikes_count)

    def get_reaction(self, identity_key: int, item_key: int) -> ReactionKind | None:
        # FOR UPDATE: параллельный запрос того же пользователя к тому же посту ждет нашего коммита
        return self._session.execute(
            select(PostReaction.reaction).where(*self._reaction_filter(identity_key, item_key)).with_for_update()
        ).scalar_one_or_none()

    def insert_reaction(self, identity_key: int, item_key: int, kind: ReactionKind) -> None:
        self._session.execute(insert(PostReaction).values(user_id=identity_key, post_id=item_key, reaction=kind))

    def update_reaction(self, identity_key: int, item_key: int, kind: ReactionKind) -> None:
        self._session.execute(
            update(PostReaction).where(*self._reaction_filter(identity_key, item_key)).values(reaction=kind)
        )

    def delete_reaction(self, identity_key: int, item_key: int) -> None:
        self._session.execute(delete(PostReaction).where(*self._reaction_filter(identity_key, item_key)))

    def apply_counters(self, item_key: int, current: ItemCounters, transition: Transition) -> ItemCounters:
        values = {}
        if transition.likes_delta:
            values["likes_count"] = _shifted(Post.likes_count, transition.likes_delta)
        if transition.dislikes_delta:
            values["dislikes_count"] = _shifted(Post.dislikes_count, transition.dislikes_delta)
        if values:
            # Считаем в базе, а не от current: счетчики общие для всех пользователей поста
            self._session.execute(update(Post).where(Post.id == item_key).values(**values))
        counters = self.get_counters(item_key)
        if counters is None:
            raise ItemNotFound(item_key)
        return counters

    def scan_reactions(self, item_key: int) -> list[ReactionKind]:
        return list(
            self._session.execute(select(PostReaction.reaction).where(PostReaction.post_id == item_key)).scalars()
        )

    def set_counters(self, item_key: int, counters: ItemCounters) -> None:
        self._session.execute(
            update(Post)
            .where(Post.id == item_key)
            .values(likes_count=counters.likes_count, dislikes_count=counters.dislikes_count)
        )


class SqlReactionBackend:
    """Реакции в реляционной базе через SQLAlchemy"""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_dsn(cls, dsn: str, *, timeout: float) -> SqlReactionBackend:
        return cls(create_reaction_engine(dsn, timeout=timeout))

    @property
    def engine(self) -> Engine:
        return self._engine

    def run_atomic(self, work: Callable[[ReactionUnitOfWork], T]) -> T:
        try:
            with self._session_factory() as session, session.begin():
                return work(SqlUnitOfWork(session))
        except DBAPIError as exc:
            if is_conflict(exc):
                raise StorageConflict(str(exc.orig)) from exc
            raise

    def close(self) -> None:
        self._engine.dispose()
