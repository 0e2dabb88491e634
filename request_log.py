import logging

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool

from database import SessionFactory, session_scope
from services import LogService


logger = logging.getLogger(__name__)


def persist_log(factory: SessionFactory, message: str, level: str = "info") -> None:
    try:
        with session_scope(factory) as session:
            LogService(session).record(message, level)
    except Exception:
        logger.warning(f"request_log_failed: message={message!r}", exc_info=True)


def install_request_logging(app: FastAPI, service_label: str) -> None:
    @app.middleware("http")
    async def log_request(request: Request, call_next):
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        message = f"[{service_label} Service] {request.method} {path}"
        logger.info(message)
        await run_in_threadpool(persist_log, request.app.state.session_factory, message)
        return await call_next(request)
