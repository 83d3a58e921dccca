import os
import threading

import pytest
from fastapi.testclient import TestClient
from google.api_core.exceptions import Aborted, AlreadyExists, NotFound
from sqlalchemy.orm import Session, sessionmaker

from reactions_api.models import Base, Post, PostReaction
from reactions_api.routes import app
from reactions_api.routes.post import get_reaction_store
from reactions_api.services.reaction_store import ReactionStore
from reactions_api.services.storage import FirestoreReactionBackend, SqlReactionBackend
from reactions_api.services.storage.firestore import POSTS_COLLECTION, REACTIONS_COLLECTION, reaction_document_id
from reactions_api.utils.reaction_policy import ItemCounters, ReactionKind


class PostgresConfig:
    """Значения для контейнера с тестовой БД, используется при TEST_POSTGRES=1"""

    username: str = "postgres"
    password: str = "postgres"
    dbname: str = "reactions_test"
    image: str = "postgres:15"


@pytest.fixture(scope="session")
def db_url(tmp_path_factory):
    """Файловая SQLite по умолчанию, Postgres в Docker-контейнере при TEST_POSTGRES=1"""
    if os.getenv("TEST_POSTGRES"):
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer(
            image=PostgresConfig.image,
            username=PostgresConfig.username,
            password=PostgresConfig.password,
            dbname=PostgresConfig.dbname,
        ) as container:
            yield container.get_connection_url()
        return
    yield f"sqlite:///{tmp_path_factory.mktemp('db') / 'reactions.db'}"


@pytest.fixture(scope="session")
def sql_backend(db_url):
    backend = SqlReactionBackend.from_dsn(db_url, timeout=30)
    Base.metadata.create_all(backend.engine)
    yield backend
    Base.metadata.drop_all(backend.engine)
    backend.close()


@pytest.fixture()
def dbsession(sql_backend):
    """Фикстура Session для работы с БД в тестах.

    expire_on_commit=False: в SQLite любое чтение открывает пишущую транзакцию,
    неявная перезагрузка атрибутов заблокировала бы ReactionStore.
    """
    session = sessionmaker(bind=sql_backend.engine, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def post(dbsession):
    _post = Post.create(session=dbsession, title="test_post", author_id=0)
    dbsession.commit()
    yield _post
    dbsession.query(PostReaction).filter(PostReaction.post_id == _post.id).delete()
    dbsession.query(Post).filter(Post.id == _post.id).delete()
    dbsession.commit()


@pytest.fixture
def sql_store(sql_backend):
    return ReactionStore(sql_backend, max_attempts=10, retry_delay=0.01)


@pytest.fixture
def client(mocker, sql_store):
    user_mock = mocker.patch("auth_lib.fastapi.UnionAuth.__call__", autospec=True)
    user_mock.return_value = {
        "session_scopes": [{"id": 0, "name": "string", "comment": "string"}],
        "user_scopes": [{"id": 0, "name": "string", "comment": "string"}],
        "indirect_groups": [{"id": 0, "name": "string", "parent_id": 0}],
        "groups": [{"id": 0, "name": "string", "parent_id": 0}],
        "id": 0,
        "email": "string",
    }
    app.dependency_overrides[get_reaction_store] = lambda: sql_store
    yield TestClient(app)
    app.dependency_overrides.pop(get_reaction_store, None)


class FakeSnapshot:
    def __init__(self, data: dict | None):
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict | None:
        return dict(self._data) if self._data is not None else None


class FakeDocumentReference:
    def __init__(self, client: "FakeFirestoreClient", path: tuple[str, str]):
        self._client = client
        self.path = path

    def get(self, transaction=None, timeout=None) -> FakeSnapshot:
        data, version = self._client.read(self.path)
        if transaction is not None:
            transaction.track_read(self.path, version)
        return FakeSnapshot(data)


class FakeQuery:
    def __init__(self, client: "FakeFirestoreClient", collection: str, filters: list):
        self._client = client
        self._collection = collection
        self._filters = filters

    def stream(self, transaction=None, timeout=None):
        with self._client.lock:
            matched = [
                (path, data, self._client.versions.get(path, 0))
                for path, data in sorted(self._client.documents.items())
                if path[0] == self._collection and all(data.get(f.field_path) == f.value for f in self._filters)
            ]
        for path, data, version in matched:
            if transaction is not None:
                transaction.track_read(path, version)
            yield FakeSnapshot(data)


class FakeCollection:
    def __init__(self, client: "FakeFirestoreClient", name: str):
        self._client = client
        self._name = name

    def document(self, document_id: str) -> FakeDocumentReference:
        return FakeDocumentReference(self._client, (self._name, document_id))

    def where(self, *, filter) -> FakeQuery:
        return FakeQuery(self._client, self._name, [filter])


class FakeTransaction:
    """Копит записи и применяет их все разом при commit, как транзакция Firestore.

    Запоминает версии прочитанных документов: если к коммиту их кто-то изменил, транзакция
    завершается Aborted, как оптимистичная транзакция Firestore.
    """

    def __init__(self, client: "FakeFirestoreClient"):
        self._client = client
        self._reads: dict[tuple[str, str], int] = {}
        self._writes = []

    def track_read(self, path: tuple[str, str], version: int) -> None:
        self._reads.setdefault(path, version)

    def create(self, ref: FakeDocumentReference, data: dict) -> None:
        self._writes.append(("create", ref.path, data))

    def update(self, ref: FakeDocumentReference, data: dict) -> None:
        self._writes.append(("update", ref.path, data))

    def delete(self, ref: FakeDocumentReference) -> None:
        self._writes.append(("delete", ref.path, None))

    def commit(self) -> None:
        client = self._client
        with client.lock:
            if client.failing_commits:
                client.failing_commits -= 1
                raise Aborted("Transaction lock timeout")
            changed = [path for path, version in self._reads.items() if client.versions.get(path, 0) != version]
            if changed:
                raise Aborted(f"Documents read by the transaction were modified: {changed}")
            staged = dict(client.documents)
            for op, path, data in self._writes:
                if op == "create":
                    if path in staged:
                        raise AlreadyExists(f"Document already exists: {path}")
                    staged[path] = dict(data)
                elif op == "update":
                    if path not in staged:
                        raise NotFound(f"No document to update: {path}")
                    staged[path] = {**staged[path], **data}
                else:
                    staged.pop(path, None)
            client.documents = staged
            for _, path, _ in self._writes:
                client.versions[path] = client.versions.get(path, 0) + 1
            client.commits += 1


class FakeFirestoreClient:
    def __init__(self):
        self.documents: dict[tuple[str, str], dict] = {}
        self.versions: dict[tuple[str, str], int] = {}
        self.lock = threading.Lock()
        self.failing_commits = 0
        self.commits = 0
        self.closed = False

    def read(self, path: tuple[str, str]) -> tuple[dict | None, int]:
        with self.lock:
            return self.documents.get(path), self.versions.get(path, 0)

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def transaction(self, max_attempts: int = 5) -> FakeTransaction:
        return FakeTransaction(self)

    def close(self) -> None:
        self.closed = True


def fake_transactional(fn):
    """Одна попытка транзакции; исчерпание попыток сообщается так же, как в google-cloud-firestore"""

    def _call(transaction):
        result = fn(transaction)
        try:
            transaction.commit()
        except Aborted as exc:
            raise ValueError("Failed to commit transaction in 1 attempts.") from exc
        return result

    return _call


@pytest.fixture
def firestore_client(mocker):
    mocker.patch("google.cloud.firestore.transactional", fake_transactional)
    return FakeFirestoreClient()


@pytest.fixture
def firestore_store(firestore_client):
    return ReactionStore(FirestoreReactionBackend(firestore_client, timeout=5), max_attempts=10, retry_delay=0)


class SqlPosts:
    """Создание постов и чтение сохраненного состояния в реляционной базе"""

    def __init__(self, backend: SqlReactionBackend):
        self._backend = backend
        self._ids = []

    def create(self, likes_count: int = 0, dislikes_count: int = 0, is_deleted: bool = False) -> int:
        with Session(self._backend.engine) as session:
            _post = Post.create(
                session=session,
                title="test_post",
                likes_count=likes_count,
                dislikes_count=dislikes_count,
                is_deleted=is_deleted,
            )
            post_id = _post.id
            session.commit()
        self._ids.append(post_id)
        return post_id

    def add_reaction(self, user_id: int, post_id: int, reaction: ReactionKind) -> None:
        with Session(self._backend.engine) as session:
            session.add(PostReaction(user_id=user_id, post_id=post_id, reaction=reaction))
            session.commit()

    def state(self, post_id: int) -> tuple[ItemCounters | None, dict[int, ReactionKind]]:
        with Session(self._backend.engine) as session:
            _post = session.get(Post, post_id)
            counters = ItemCounters(_post.likes_count, _post.dislikes_count) if _post else None
            reactions = {
                r.user_id: r.reaction for r in session.query(PostReaction).filter(PostReaction.post_id == post_id)
            }
            return counters, reactions

    def cleanup(self) -> None:
        with Session(self._backend.engine) as session:
            session.query(PostReaction).filter(PostReaction.post_id.in_(self._ids)).delete()
            session.query(Post).filter(Post.id.in_(self._ids)).delete()
            session.commit()


class FirestorePosts:
    """То же для документов в фейковом Firestore"""

    def __init__(self, client: FakeFirestoreClient):
        self._client = client
        self._next_id = 1

    def create(self, likes_count: int = 0, dislikes_count: int = 0, is_deleted: bool = False) -> int:
        post_id = self._next_id
        self._next_id += 1
        self._client.documents[(POSTS_COLLECTION, str(post_id))] = {
            "id": post_id,
            "title": "test_post",
            "likes_count": likes_count,
            "dislikes_count": dislikes_count,
            "is_deleted": is_deleted,
        }
        return post_id

    def add_reaction(self, user_id: int, post_id: int, reaction: ReactionKind) -> None:
        self._client.documents[(REACTIONS_COLLECTION, reaction_document_id(user_id, post_id))] = {
            "user_id": user_id,
            "post_id": post_id,
            "reaction": reaction.value,
        }

    def state(self, post_id: int) -> tuple[ItemCounters | None, dict[int, ReactionKind]]:
        data = self._client.documents.get((POSTS_COLLECTION, str(post_id)))
        counters = ItemCounters(data["likes_count"], data["dislikes_count"]) if data else None
        reactions = {
            doc["user_id"]: ReactionKind(doc["reaction"])
            for (collection, _), doc in self._client.documents.items()
            if collection == REACTIONS_COLLECTION and doc["post_id"] == post_id
        }
        return counters, reactions

    def cleanup(self) -> None:
        pass


@pytest.fixture(params=["sql", "firestore"])
def reaction_backend(request):
    """ReactionStore и посты для каждого из хранилищ"""
    if request.param == "sql":
        store = request.getfixturevalue("sql_store")
        posts = SqlPosts(request.getfixturevalue("sql_backend"))
    else:
        store = request.getfixturevalue("firestore_store")
        posts = FirestorePosts(request.getfixturevalue("firestore_client"))
    yield store, posts
    posts.cleanup()
