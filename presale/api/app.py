"""
预售系统 — FastAPI 应用

主应用入口，配置异常处理和路由。
"""

from contextlib import asynccontextmanager
from typing import Any

# 加载环境变量（必须在读取配置之前）
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from presale import __version__
from presale.clients import OneClickClient, TEEProofClient
from presale.common.config import Settings, get_settings
from presale.common.exceptions import (
    AvailabilityConflictError,
    BatchQuoteError,
    InvalidProofArchiveError,
    InvalidTicketTransitionError,
    PresaleError,
    ProofNotReadyError,
    ServiceError,
    SessionClosedError,
    TicketNotFoundError,
)
from presale.common.logging import get_logger
from presale.common.utils import utc_now
from presale.core.orchestrator import PurchaseOrchestrator
from presale.storage import TicketReferenceStore

from . import dependencies
from .routes import purchase_router

logger = get_logger(__name__)


# 异常 -> (HTTP 状态码, 错误码)，按顺序匹配
ERROR_STATUS: list[tuple[type[PresaleError], int, str]] = [
    (AvailabilityConflictError, status.HTTP_409_CONFLICT, "AVAILABILITY_CONFLICT"),
    (BatchQuoteError, status.HTTP_502_BAD_GATEWAY, "QUOTE_FAILED"),
    (ServiceError, status.HTTP_502_BAD_GATEWAY, "SERVICE_ERROR"),
    (TicketNotFoundError, status.HTTP_404_NOT_FOUND, "TICKET_NOT_FOUND"),
    (SessionClosedError, status.HTTP_404_NOT_FOUND, "NO_ACTIVE_SESSION"),
    (ProofNotReadyError, status.HTTP_409_CONFLICT, "PROOF_NOT_READY"),
    (InvalidTicketTransitionError, status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    (InvalidProofArchiveError, status.HTTP_400_BAD_REQUEST, "INVALID_PROOF_ARCHIVE"),
]


def error_status(exc: PresaleError) -> tuple[int, str]:
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_400_BAD_REQUEST, "PRESALE_ERROR"


def build_orchestrator(settings: Settings) -> PurchaseOrchestrator | None:
    """按配置创建编排器，未配置发售信息时返回 None"""
    if settings.launch is None:
        logger.warning("未配置发售信息，购买接口不可用")
        return None
    
    return PurchaseOrchestrator(
        bridge=OneClickClient(settings.bridge),
        tee=TEEProofClient(settings.tee),
        launch=settings.launch,
        settings=settings,
        store=TicketReferenceStore(settings.storage.data_dir),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("API 服务启动")
    
    if dependencies.get_current_orchestrator() is None:
        dependencies.init_services(build_orchestrator(get_settings()))
    
    yield
    
    orchestrator = dependencies.get_current_orchestrator()
    if orchestrator is not None:
        await orchestrator.shutdown()
    logger.info("API 服务关闭")


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用
    
    Returns:
        配置好的 FastAPI 实例
    """
    app = FastAPI(
        title="私募预售购买 API",
        description="多票据私募预售购买编排接口",
        version=__version__,
        lifespan=lifespan,
    )
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    register_exception_handlers(app)
    register_routes(app)
    
    return app


def _error_response(status_code: int, error: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "timestamp": utc_now().isoformat(),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """注册异常处理器"""
    
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """HTTP 异常处理"""
        error = exc.detail if isinstance(exc.detail, dict) else {
            "code": "HTTP_ERROR",
            "message": str(exc.detail),
        }
        return _error_response(exc.status_code, error)
    
    @app.exception_handler(PresaleError)
    async def presale_exception_handler(request: Request, exc: PresaleError) -> JSONResponse:
        """业务异常处理"""
        status_code, code = error_status(exc)
        logger.warning(
            f"请求失败: {code} {exc.message}",
            extra={"path": request.url.path, "details": exc.details},
        )
        return _error_response(
            status_code,
            {"code": code, "message": exc.message, "details": exc.details},
        )


def register_routes(app: FastAPI) -> None:
    """注册路由"""
    app.include_router(purchase_router)
    
    @app.get("/health", tags=["系统"])
    async def health_check() -> dict[str, Any]:
        """健康检查"""
        orchestrator = dependencies.get_current_orchestrator()
        return {
            "status": "healthy",
            "timestamp": utc_now().isoformat(),
            "version": __version__,
            "configured": orchestrator is not None,
        }


# 创建应用实例
app = create_app()
