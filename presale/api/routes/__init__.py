"""
预售系统 — API 路由
"""

from .purchase import router as purchase_router

__all__ = ["purchase_router"]
