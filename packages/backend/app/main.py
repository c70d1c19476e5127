import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
import uvicorn

from app.api.dependencies.cipher import get_cipher
from app.api.v1.shared import router as shared_router
from app.api.v1.vault import router as vault_router
from app.core.logging_config import configure_logging
from app.core.problems import problem_response
from app.core.settings import settings
from app.db import model_registry as _model_registry  # noqa: F401


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    # A missing or malformed key in production must stop the process here.
    get_cipher()
    logger.info("Canvas Vault API starting (env=%s)", settings.app_env)
    yield


app = FastAPI(title="Canvas Vault API", lifespan=lifespan)
app.include_router(vault_router)
app.include_router(shared_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred.",
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, reload=not settings.is_production)
