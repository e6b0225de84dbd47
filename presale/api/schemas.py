"""
预售系统 — API 请求 / 响应模型
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from presale.common.enums import SessionState, TicketState
from presale.common.models import PaymentAsset, TicketProof, TicketReference
from presale.common.utils import utc_now
from presale.core.session import PurchaseSession
from presale.core.ticket import Ticket, get_state_metadata

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    success: bool = True
    data: T | None = None
    error: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorDetail(BaseModel):
    """错误详情"""
    code: str
    message: str
    details: dict[str, Any] | None = None


# ========================================
# 请求
# ========================================

class PaymentAssetRequest(BaseModel):
    """支付资产"""
    asset_id: str
    symbol: str
    decimals: int = Field(ge=0, le=30)
    price_usd: Decimal = Field(gt=0)
    blockchain: str = ""
    
    def to_asset(self) -> PaymentAsset:
        return PaymentAsset(**self.model_dump())


class StartSessionRequest(BaseModel):
    """开始购买会话"""
    quantity: int = Field(description="票据数量")
    payment: PaymentAssetRequest
    refund_to: str = Field(min_length=1)
    user_pubkey: str = Field(min_length=1)
    unit_price_usd: Decimal | None = Field(default=None, gt=0)


# ========================================
# 响应
# ========================================

class TicketResponse(BaseModel):
    """票据"""
    index: int
    state: TicketState
    state_name: str
    selectable: bool
    deposit_address: str
    deposit_memo: str | None = None
    deposit_amount: str
    expected_out: str
    time_estimate: int
    deadline: str | None = None
    swap_status: str | None = None
    proof: TicketProof | None = None
    
    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketResponse":
        metadata = get_state_metadata(ticket.state)
        return cls(
            index=ticket.index,
            state=ticket.state,
            state_name=metadata.name,
            selectable=metadata.selectable,
            deposit_address=ticket.deposit_address,
            deposit_memo=ticket.deposit_memo,
            deposit_amount=ticket.deposit_amount,
            expected_out=ticket.quote.expected_out,
            time_estimate=ticket.quote.time_estimate,
            deadline=ticket.quote.deadline,
            swap_status=ticket.swap_status.status.value if ticket.swap_status else None,
            proof=ticket.proof,
        )


class SessionResponse(BaseModel):
    """购买会话"""
    session_id: str
    state: SessionState
    completed_count: int
    total: int
    all_completed: bool
    selected_index: int | None = None
    total_claim_amount: str
    tickets: list[TicketResponse]
    
    @classmethod
    def from_session(cls, session: PurchaseSession) -> "SessionResponse":
        status = session.status()
        return cls(
            session_id=status.session_id,
            state=status.state,
            completed_count=status.completed_count,
            total=status.total,
            all_completed=session.all_completed(),
            selected_index=status.selected_index,
            total_claim_amount=str(session.total_claim_amount()),
            tickets=[TicketResponse.from_ticket(t) for t in session.tickets],
        )


class ReferenceListResponse(BaseModel):
    """本地证明凭证列表"""
    items: list[TicketReference]
    total: int
