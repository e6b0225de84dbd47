"""
预售系统 — 票据模型
"""

from pydantic import BaseModel, ConfigDict, Field

from presale.common.enums import TicketState
from presale.common.models import ProofResult, QuoteEstimate, SwapStatusSnapshot, TicketProof


class Ticket(BaseModel):
    """
    票据
    
    不可变，每次状态变化都生成新实例。
    proof / proof_result 仅在 COMPLETED 状态下非空。
    """
    model_config = ConfigDict(frozen=True)
    
    index: int = Field(ge=0)
    deposit_address: str
    deposit_memo: str | None = None
    deposit_amount: str
    quote: QuoteEstimate
    swap_status: SwapStatusSnapshot | None = None
    proof: TicketProof | None = None
    proof_result: ProofResult | None = None
    state: TicketState = TicketState.PENDING
    
    @property
    def is_completed(self) -> bool:
        return self.state == TicketState.COMPLETED
    
    def with_swap_status(self, snapshot: SwapStatusSnapshot) -> "Ticket":
        """覆盖最新兑换状态（不改变票据状态）"""
        return self.model_copy(update={"swap_status": snapshot})
