"""
预售系统 — 枚举定义
"""

from enum import Enum


class TicketState(str, Enum):
    """票据状态（状态机）"""
    PENDING = "pending"
    WAITING_PAYMENT = "waiting-payment"
    CONFIRMING = "confirming"
    GENERATING_PROOF = "generating-proof"
    COMPLETED = "completed"
    FAILED = "failed"


class TicketEventKind(str, Enum):
    """票据事件"""
    CHANNEL_CREATED = "channel_created"
    WATCH_STARTED = "watch_started"
    SWAP_SUCCEEDED = "swap_succeeded"
    SWAP_FAILED = "swap_failed"
    SWAP_REFUNDED = "swap_refunded"
    DEPOSIT_INCOMPLETE = "deposit_incomplete"
    WATCH_EXPIRED = "watch_expired"
    RETRY_REQUESTED = "retry_requested"
    PROOF_VERIFIED = "proof_verified"
    PROOF_REJECTED = "proof_rejected"


class SwapStatus(str, Enum):
    """1Click 兑换状态"""
    PENDING_DEPOSIT = "PENDING_DEPOSIT"
    PENDING = "PENDING"
    KNOWN_DEPOSIT_TX = "KNOWN_DEPOSIT_TX"
    PROCESSING = "PROCESSING"
    INCOMPLETE_DEPOSIT = "INCOMPLETE_DEPOSIT"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    
    @classmethod
    def parse(cls, value: "SwapStatus | str | None") -> "SwapStatus":
        """未知状态按 PENDING 处理"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.PENDING


class SessionState(str, Enum):
    """购买会话状态"""
    ACTIVE = "active"
    SUCCESS = "success"      # 全部票据完成
    CLOSED = "closed"        # 已重置 / 已关闭


class ReferenceStatus(str, Enum):
    """本地证明凭证状态"""
    PENDING = "pending"
    CLAIMED = "claimed"


class TicketNotice(str, Enum):
    """需要提示给调用方的票据事件"""
    SWAP_FAILED = "swap_failed"
    FUNDS_REFUNDED = "funds_refunded"
    INCOMPLETE_DEPOSIT = "incomplete_deposit"
    PROOF_REJECTED = "proof_rejected"
    WATCH_EXPIRED = "watch_expired"
