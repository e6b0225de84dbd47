"""
预售系统 — 自定义异常

异常层级：
- PresaleError: 基础异常
  - AvailabilityConflictError: 供应不足 / 已售罄
  - QuoteError: 报价层异常
    - BatchQuoteError: 批量报价失败（整批作废）
  - ServiceError: 外部服务异常
    - SwapBridgeError: 跨链兑换服务异常
    - ProofServiceError: TEE 证明服务异常
    - TransientServiceError: 瞬时错误（网络 / 超时），可重试
  - TicketError: 票据层异常
    - InvalidTicketTransitionError: 非法状态转换
    - TicketNotFoundError: 票据不存在
    - ProofNotReadyError: 证明尚未生成
  - SessionClosedError: 会话已关闭
  - ReferenceStoreError: 凭证存储写入失败
  - InvalidProofArchiveError: 证明压缩包无效
"""

from typing import Any


class PresaleError(Exception):
    """预售系统基础异常"""
    
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AvailabilityConflictError(PresaleError):
    """请求数量超过剩余供应，或已售罄"""
    pass


# ============================================================
# 报价层异常
# ============================================================

class QuoteError(PresaleError):
    """报价层异常"""
    pass


class BatchQuoteError(QuoteError):
    """
    批量报价失败
    
    任意一个报价失败即整批作废，不会创建部分会话。
    已生成的充值地址无法撤销，失败的序号记录在 details 中。
    """
    
    def __init__(
        self,
        message: str,
        failed_indices: list[int],
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        details.setdefault("failed_indices", failed_indices)
        details.setdefault("stage", "quote")
        super().__init__(message, details)
        self.failed_indices = failed_indices


# ============================================================
# 外部服务异常
# ============================================================

class ServiceError(PresaleError):
    """外部服务异常"""
    pass


class SwapBridgeError(ServiceError):
    """跨链兑换服务返回错误"""
    pass


class ProofServiceError(ServiceError):
    """TEE 证明服务返回错误"""
    pass


class TransientServiceError(ServiceError):
    """瞬时错误（网络 / 超时），下次轮询重试"""
    pass


# ============================================================
# 票据层异常
# ============================================================

class TicketError(PresaleError):
    """票据层异常"""
    pass


class InvalidTicketTransitionError(TicketError):
    """非法票据状态转换"""
    pass


class TicketNotFoundError(TicketError):
    """票据不存在"""
    pass


class ProofNotReadyError(TicketError):
    """票据尚未完成，没有可下载的证明"""
    pass


# ============================================================
# 会话 / 存储异常
# ============================================================

class SessionClosedError(PresaleError):
    """会话已重置或关闭"""
    pass


class ReferenceStoreError(PresaleError):
    """凭证存储读写失败"""
    pass


class InvalidProofArchiveError(PresaleError):
    """证明压缩包缺少文件或内容无效"""
    pass
