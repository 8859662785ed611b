from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from assetguard.api import register_exception_handlers
from assetguard.core import config
from assetguard.core.database.engine import AsyncSessionLocal, init_db
from assetguard.features.audit.sinks import build_audit_logger
from assetguard.utils import configure_logging, get_logger


configure_logging()
log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")

    app.state.audit_logger = build_audit_logger(config.AUDIT_SINK, session_factory=AsyncSessionLocal)
    log.info("Audit sink: %s", type(app.state.audit_logger).__name__)
    try:
        yield
    finally:
        # Best-effort flush of anything still buffered
        await app.state.audit_logger.close()


log.info("Initializing server")
app = FastAPI(
    title="AssetGuard",
    description="Role and asset-instance authorization with audit logging",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None,
    lifespan=lifespan,
)

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_exception_handlers(app)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
