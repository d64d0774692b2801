"""FastAPI 요청 경계(request boundary) 연동 모듈."""
from typing import Callable, Generator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fastrepo.config import FastRepo
from fastrepo.core import ConcurrencyConflict, PersistenceError, ValidationError
from fastrepo.logging import get_logger
from fastrepo.orm import SessionMaker
from fastrepo.uow import RepoMakerDict, SqlAlchemyUnitOfWork

IDENTITY_HEADER = "X-User"

logger = get_logger("fastrepo.api")


def header_identity(request: Request) -> Optional[str]:
    """``X-User`` 요청 헤더로 현재 호출자를 구합니다."""
    return request.headers.get(IDENTITY_HEADER)


def unit_of_work_dependency(
    get_session: Optional[SessionMaker] = None,
    repo_maker: Optional[RepoMakerDict] = None,
    identity: Callable[[Request], Optional[str]] = header_identity,
    config: Optional[FastRepo] = None,
) -> Callable[[Request], Generator[SqlAlchemyUnitOfWork, None, None]]:
    """요청마다 UoW를 하나 만들고, 요청이 끝나면 반드시 폐기하는 의존성.

    Example: ::

        get_uow = unit_of_work_dependency(repo_maker={Post: PostRepository})

        @app.post("/posts")
        def add_post(req: PostSchema, uow=Depends(get_uow)):
            ...
    """

    def dependency(request: Request) -> Generator[SqlAlchemyUnitOfWork, None, None]:
        uow = SqlAlchemyUnitOfWork(
            get_session=get_session,
            repo_maker=repo_maker,
            current_user=lambda: identity(request),
            config=config,
        )
        try:
            yield uow
        finally:
            uow.dispose()

    return dependency


def init_app(app: FastAPI) -> FastAPI:
    """FastRepo 에러를 HTTP 응답으로 변환하는 핸들러를 등록합니다."""

    @app.exception_handler(ValidationError)
    def handle_validation_error(request: Request, e: ValidationError):
        return JSONResponse({"error": "ValidationError", "detail": e.message}, 422)

    @app.exception_handler(ConcurrencyConflict)
    def handle_conflict(request: Request, e: ConcurrencyConflict):
        logger.warning("%s %s: %s", request.method, request.url.path, e.message)
        return JSONResponse({"error": "ConcurrencyConflict", "detail": e.message}, 409)

    @app.exception_handler(PersistenceError)
    def handle_persistence_error(request: Request, e: PersistenceError):
        logger.error("%s %s: %s", request.method, request.url.path, e.message)
        return JSONResponse({"error": "PersistenceError", "detail": e.message}, 503)

    return app
