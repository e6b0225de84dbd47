"""
预售系统 — 票据状态转换

纯函数：(Ticket, TicketEvent) -> Ticket，不做任何外部调用。
"""

from dataclasses import dataclass, field
from datetime import datetime

from presale.common.enums import TicketEventKind, TicketNotice, TicketState
from presale.common.exceptions import InvalidTicketTransitionError
from presale.common.models import ProofResult, TicketProof
from presale.common.utils import utc_now

from .models import Ticket
from .states import EVENT_RULES, is_valid_transition


@dataclass(frozen=True)
class TicketEvent:
    """票据事件"""
    kind: TicketEventKind
    reason: str = ""
    proof_result: ProofResult | None = None
    token_decimals: int = 9


@dataclass(frozen=True)
class TicketStateChange:
    """状态变化通知（回调参数）"""
    index: int
    from_state: TicketState
    to_state: TicketState
    event: TicketEventKind
    reason: str
    notice: TicketNotice | None = None
    ticket: Ticket | None = None
    timestamp: datetime = field(default_factory=utc_now)


# 事件对应的调用方提示
EVENT_NOTICES: dict[TicketEventKind, TicketNotice] = {
    TicketEventKind.SWAP_FAILED: TicketNotice.SWAP_FAILED,
    TicketEventKind.SWAP_REFUNDED: TicketNotice.FUNDS_REFUNDED,
    TicketEventKind.DEPOSIT_INCOMPLETE: TicketNotice.INCOMPLETE_DEPOSIT,
    TicketEventKind.PROOF_REJECTED: TicketNotice.PROOF_REJECTED,
    TicketEventKind.WATCH_EXPIRED: TicketNotice.WATCH_EXPIRED,
}


def can_apply(ticket: Ticket, kind: TicketEventKind) -> bool:
    """事件在票据当前状态下是否可用"""
    sources, target = EVENT_RULES[kind]
    return ticket.state in sources and is_valid_transition(ticket.state, target)


def apply_event(ticket: Ticket, event: TicketEvent) -> Ticket:
    """
    应用事件，返回新票据
    
    Args:
        ticket: 当前票据
        event: 事件
    
    Returns:
        转换后的票据
    
    Raises:
        InvalidTicketTransitionError: 当前状态不接受该事件
    """
    sources, target = EVENT_RULES[event.kind]
    
    if ticket.state not in sources or not is_valid_transition(ticket.state, target):
        raise InvalidTicketTransitionError(
            f"票据 {ticket.index} 在 {ticket.state.value} 状态下不接受 {event.kind.value}",
            details={
                "ticket_index": ticket.index,
                "stage": ticket.state.value,
                "event": event.kind.value,
            },
        )
    
    update: dict = {"state": target}
    
    if target == TicketState.COMPLETED:
        if event.proof_result is None or not event.proof_result.is_verified:
            raise InvalidTicketTransitionError(
                f"票据 {ticket.index} 缺少已校验的证明",
                details={"ticket_index": ticket.index, "stage": ticket.state.value},
            )
        update["proof"] = TicketProof.from_result(event.proof_result, event.token_decimals)
        update["proof_result"] = event.proof_result
    
    return ticket.model_copy(update=update)
