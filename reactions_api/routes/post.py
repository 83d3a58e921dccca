import logging

from auth_lib.fastapi import UnionAuth
from fastapi import APIRouter, Depends, Request

from reactions_api.exceptions import ReactionsAPIError
from reactions_api.schemas.models import CountersGet, ReactionGet, ReactionPost
from reactions_api.services.reaction_store import ReactionStore


logger = logging.getLogger(__name__)
post = APIRouter(prefix="/post", tags=["Post"])


def get_reaction_store(request: Request) -> ReactionStore:
    return request.app.state.reaction_store


@post.post("/{post_id}/react", response_model=ReactionGet)
def react_to_post(
    post_id: int,
    body: ReactionPost,
    user=Depends(UnionAuth()),
    store: ReactionStore = Depends(get_reaction_store),
) -> ReactionGet:
    """
    Ставит лайк или дизлайк посту.

    У пользователя может быть только одна реакция на пост. Другая реакция заменяет текущую,
    повторная такая же реакция снимает ее. Возвращает счетчики поста и итоговую реакцию
    пользователя (пустая строка, если реакции нет).
    """
    user_id = user.get("id")
    try:
        result = store.set_reaction(user_id, post_id, body.reaction)
    except ReactionsAPIError:
        raise
    except Exception:
        logger.exception(f"Could not set reaction {body.reaction!r} of user {user_id} on post {post_id}")
        raise
    return ReactionGet.from_result(result)


@post.get("/{post_id}/react", response_model=ReactionGet)
def get_post_reaction(
    post_id: int,
    user=Depends(UnionAuth()),
    store: ReactionStore = Depends(get_reaction_store),
) -> ReactionGet:
    """
    Счетчики реакций поста и реакция текущего пользователя
    """
    return ReactionGet.from_result(store.get_reaction(user.get("id"), post_id))


@post.post("/{post_id}/recount", response_model=CountersGet)
def recount_post_reactions(
    post_id: int,
    _=Depends(UnionAuth(scopes=["blog.post.reactions.recount"])),
    store: ReactionStore = Depends(get_reaction_store),
) -> CountersGet:
    """
    Пересчитывает счетчики лайков и дизлайков поста по сохраненным реакциям

    Для пересчета нужен скоуп blog.post.reactions.recount
    """
    return CountersGet.from_counters(store.recount(post_id))
