from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .config import Settings, settings
from .errors import ConflictError, SchedulerError
from .logging import configure_logging, logger
from .metrics import registry
from .middleware import AccessLogMiddleware, RequestIDMiddleware
from .routers import health, memory
from .service import SchedulerService


async def _scheduler_error_handler(request: Request, exc: SchedulerError) -> JSONResponse:
    """ドメイン例外を HTTP 応答へ変換する（黙殺せず必ずステータスで伝える）。"""

    if isinstance(exc, ConflictError):
        registry.record_conflict()
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "scheduler_error",
        error=type(exc).__name__,
        detail=exc.message,
        path=request.url.path,
        status=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "retryable": exc.retryable},
    )


def create_app(
    service: Optional[SchedulerService] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """Build the API application.

    import 時にはアプリを生成しない（既定 DB を開く副作用を避ける）。
    uvicorn からは `retention_scheduler.main:create_app --factory` で起動する。
    """

    config = config or settings
    configure_logging(config)
    app = FastAPI(title="Retention Scheduler API", version="0.1.0")
    app.state.service = service or SchedulerService.from_settings(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # 後に追加したものが外側。RequestID を最外にしてアクセスログへ request_id を載せる
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(SchedulerError, _scheduler_error_handler)  # type: ignore[arg-type]

    app.include_router(memory.router, prefix="/api/memory")  # 復習スケジューラ
    app.include_router(health.router)  # ヘルスチェック/メトリクス
    logger.info("app_started", environment=config.environment, database_path=config.database_path)
    return app

