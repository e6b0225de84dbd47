"""
预售系统 — API 依赖注入
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status

from presale.common.logging import get_logger
from presale.core.orchestrator import PurchaseOrchestrator

logger = get_logger(__name__)


# ========================================
# 单例实例
# ========================================

_orchestrator: PurchaseOrchestrator | None = None


def init_services(orchestrator: PurchaseOrchestrator | None = None) -> None:
    """
    初始化服务实例
    
    在应用启动时调用（测试中可直接注入 mock 服务）。
    """
    global _orchestrator
    _orchestrator = orchestrator
    logger.info("API 服务依赖已初始化")


def get_current_orchestrator() -> PurchaseOrchestrator | None:
    return _orchestrator


# ========================================
# 依赖函数
# ========================================

async def get_orchestrator() -> PurchaseOrchestrator:
    """获取购买编排器"""
    if _orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "NOT_CONFIGURED", "message": "未配置发售信息"},
        )
    return _orchestrator


OrchestratorDep = Annotated[PurchaseOrchestrator, Depends(get_orchestrator)]
