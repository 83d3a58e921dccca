import starlette.requests
from google.api_core.exceptions import GoogleAPICallError
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from reactions_api.exceptions import InvalidReaction, ObjectNotFound, TransientStorageConflict
from reactions_api.schemas.base import StatusResponseModel

from .base import app


@app.exception_handler(ObjectNotFound)
async def not_found_handler(req: starlette.requests.Request, exc: ObjectNotFound):
    return JSONResponse(
        content=StatusResponseModel(status="Error", message=exc.eng, ru=exc.ru).model_dump(), status_code=404
    )


@app.exception_handler(InvalidReaction)
async def invalid_reaction_handler(req: starlette.requests.Request, exc: InvalidReaction):
    return JSONResponse(
        content=StatusResponseModel(status="Error", message=exc.eng, ru=exc.ru).model_dump(), status_code=400
    )


@app.exception_handler(TransientStorageConflict)
async def transient_conflict_handler(req: starlette.requests.Request, exc: TransientStorageConflict):
    return JSONResponse(
        content=StatusResponseModel(status="Error", message=exc.eng, ru=exc.ru).model_dump(), status_code=500
    )


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(GoogleAPICallError)
async def storage_error_handler(req: starlette.requests.Request, exc: Exception):
    return JSONResponse(
        content=StatusResponseModel(
            status="Error",
            message="Storage error. Try again later",
            ru="Ошибка хранилища. Попробуйте позже",
        ).model_dump(),
        status_code=500,
    )
