from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reactions_api import __version__
from reactions_api.routes.post import post
from reactions_api.services.reaction_store import ReactionStore
from reactions_api.services.storage import create_backend
from reactions_api.settings import Settings, get_settings
from reactions_api.utils.logging_utils import configure_logging


settings: Settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    # Одно подключение к хранилищу на процесс, закрывается при остановке
    backend = create_backend(settings)
    app.state.reaction_store = ReactionStore(
        backend,
        max_attempts=settings.REACTION_MAX_ATTEMPTS,
        retry_delay=settings.REACTION_RETRY_DELAY,
    )
    try:
        yield
    finally:
        backend.close()


app = FastAPI(
    title='Реакции на посты',
    description='Лайки и дизлайки постов блога и счетчики реакций.',
    version=__version__,
    # Отключаем нелокальную документацию
    root_path=settings.ROOT_PATH if __version__ != 'dev' else '/',
    docs_url=None if __version__ != 'dev' else '/docs',
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

app.include_router(post)
