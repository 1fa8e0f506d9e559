import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bob_python_backend.config import LOG_LEVEL, USE_TEST_DATA
from bob_python_backend.db_session import dispose_engine, get_engine, get_session_factory
from bob_python_backend.diagnostics_api import router as diagnostics_router
from bob_python_backend.errors import BobError
from bob_python_backend.factcheck_api import router as factcheck_router
from bob_python_backend.middleware import configure_middleware
from bob_python_backend.oauth_api import router as oauth_router
from bob_python_backend.process_api import router as process_router
from bob_python_backend.services.kv_store import InMemoryStore, KeyValueStore, SqlKeyValueStore
from bob_python_backend.services.rate_limiter import RateLimiter

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("bob_backend")


def _default_store() -> KeyValueStore:
    session_factory = get_session_factory()
    if session_factory is None:
        logger.info("[STORE] DATABASE_URL not set, using in-memory store")
        return InMemoryStore()
    logger.info("[STORE] Using SQL key-value store")
    return SqlKeyValueStore(session_factory)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = app.state.store
    if isinstance(store, SqlKeyValueStore):
        logger.info("[STORE] Ensuring kv_entries table exists...")
        await SqlKeyValueStore.create_tables(get_engine())
    owns_client = app.state.http_client is None
    if owns_client:
        app.state.http_client = httpx.AsyncClient(timeout=30)
    yield
    if owns_client:
        await app.state.http_client.aclose()
        app.state.http_client = None
    await dispose_engine()


def _error_response(status_code: int, error: str, details: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BobError)
    async def handle_bob_error(request: Request, exc: BobError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s: %s", request.method, request.url.path, exc.error, exc.details)
        else:
            logger.warning("%s %s rejected: %s: %s", request.method, request.url.path, exc.error, exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        error = "Not found" if exc.status_code == 404 else "Request failed"
        if exc.status_code >= 500:
            error = "Internal server error"
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return _error_response(exc.status_code, error, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        logger.warning("%s %s invalid request: %s", request.method, request.url.path, problems)
        return _error_response(400, "Invalid request", problems)


def create_app(
    store: Optional[KeyValueStore] = None,
    limiter: Optional[RateLimiter] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    use_test_data: Optional[bool] = None,
    allowed_origins=None,
) -> FastAPI:
    app = FastAPI(title="Based or Biased API", lifespan=lifespan)
    app.state.store = store if store is not None else _default_store()
    app.state.http_client = http_client
    app.state.use_test_data = USE_TEST_DATA if use_test_data is None else use_test_data

    register_exception_handlers(app)
    app.state.limiter = configure_middleware(app, limiter=limiter, allowed_origins=allowed_origins)

    app.include_router(process_router)
    app.include_router(oauth_router)
    app.include_router(diagnostics_router)
    app.include_router(factcheck_router)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "API is operational"

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    if app.state.use_test_data:
        logger.warning("USE_TEST_DATA is enabled: serving canned posts and scores")
    return app


bob_app = create_app()
