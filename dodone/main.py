from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dodone.api.middleware import RequestTimingMiddleware
from dodone.api.v1.board import BoardResponse
from dodone.api.v1.router import v1_router
from dodone.common.enums import ChangeOrigin
from dodone.common.events import BOARD_UPDATED, emit_nowait
from dodone.common.exceptions import DoDoneError
from dodone.common.logging import get_logger, setup_logging
from dodone.config import settings
from dodone.core.board.schemas import Snapshot
from dodone.core.cache.codec import LocalCacheCodec
from dodone.core.session import BoardSession
from dodone.integrations.kv_store import SqlKeyValueStore
from dodone.integrations.remote_store import create_remote_store

logger = get_logger("main")


def broadcast_board(snapshot: Snapshot, origin: ChangeOrigin) -> None:
    emit_nowait(
        BOARD_UPDATED,
        {
            "origin": origin.value,
            "board": BoardResponse.from_snapshot(snapshot).model_dump(mode="json"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    codec = LocalCacheCodec(SqlKeyValueStore())
    session = BoardSession(codec, create_remote_store())
    session.subscribe(broadcast_board)
    app.state.session = session
    outcome = await session.start()
    logger.info("Board session started (%s)", outcome.value)
    yield
    await session.close()
    app.state.session = None


app = FastAPI(
    title="DoDone API",
    description="Local-first personal board with remote sync",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)


@app.exception_handler(DoDoneError)
async def dodone_error_handler(request: Request, exc: DoDoneError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    session = getattr(app.state, "session", None)
    remote_ok = await session.remote.health_check() if session is not None else False
    return {
        "status": "healthy",
        "service": "dodone",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "remote": remote_ok,
    }
