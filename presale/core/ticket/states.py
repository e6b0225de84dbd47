"""
预售系统 — 票据状态定义

每张票据独立运行一个状态机。
"""

from dataclasses import dataclass

from presale.common.enums import TicketEventKind, TicketState


@dataclass(frozen=True)
class StateMetadata:
    """状态元数据"""
    name: str
    description: str
    is_terminal: bool
    selectable: bool  # 是否可作为当前展示的票据


STATE_METADATA: dict[TicketState, StateMetadata] = {
    TicketState.PENDING: StateMetadata(
        name="待创建",
        description="充值通道尚未生成",
        is_terminal=False,
        selectable=True,
    ),
    TicketState.WAITING_PAYMENT: StateMetadata(
        name="等待付款",
        description="充值地址已生成，等待买家付款",
        is_terminal=False,
        selectable=True,
    ),
    TicketState.CONFIRMING: StateMetadata(
        name="确认中",
        description="轮询跨链兑换状态",
        is_terminal=False,
        selectable=True,
    ),
    TicketState.GENERATING_PROOF: StateMetadata(
        name="生成证明",
        description="兑换成功，等待 TEE 签发证明",
        is_terminal=False,
        selectable=True,
    ),
    TicketState.COMPLETED: StateMetadata(
        name="已完成",
        description="证明已校验，可下载",
        is_terminal=True,
        selectable=False,
    ),
    TicketState.FAILED: StateMetadata(
        name="已失效",
        description="超过报价截止时间仍未完成兑换，可重试",
        is_terminal=False,
        selectable=True,
    ),
}


# 合法状态转换规则
VALID_TRANSITIONS: dict[TicketState, set[TicketState]] = {
    TicketState.PENDING: {TicketState.WAITING_PAYMENT},
    TicketState.WAITING_PAYMENT: {TicketState.CONFIRMING},
    TicketState.CONFIRMING: {
        TicketState.GENERATING_PROOF,
        TicketState.WAITING_PAYMENT,
        TicketState.FAILED,
    },
    TicketState.GENERATING_PROOF: {TicketState.COMPLETED, TicketState.CONFIRMING},
    TicketState.COMPLETED: set(),
    TicketState.FAILED: {TicketState.WAITING_PAYMENT},
}


# 事件 -> (允许的源状态, 目标状态)
EVENT_RULES: dict[TicketEventKind, tuple[frozenset[TicketState], TicketState]] = {
    TicketEventKind.CHANNEL_CREATED: (
        frozenset({TicketState.PENDING}), TicketState.WAITING_PAYMENT,
    ),
    TicketEventKind.WATCH_STARTED: (
        frozenset({TicketState.WAITING_PAYMENT}), TicketState.CONFIRMING,
    ),
    TicketEventKind.SWAP_SUCCEEDED: (
        frozenset({TicketState.CONFIRMING}), TicketState.GENERATING_PROOF,
    ),
    TicketEventKind.SWAP_FAILED: (
        frozenset({TicketState.CONFIRMING}), TicketState.WAITING_PAYMENT,
    ),
    TicketEventKind.SWAP_REFUNDED: (
        frozenset({TicketState.CONFIRMING}), TicketState.WAITING_PAYMENT,
    ),
    TicketEventKind.DEPOSIT_INCOMPLETE: (
        frozenset({TicketState.CONFIRMING}), TicketState.WAITING_PAYMENT,
    ),
    TicketEventKind.WATCH_EXPIRED: (
        frozenset({TicketState.CONFIRMING}), TicketState.FAILED,
    ),
    TicketEventKind.RETRY_REQUESTED: (
        frozenset({TicketState.FAILED}), TicketState.WAITING_PAYMENT,
    ),
    TicketEventKind.PROOF_VERIFIED: (
        frozenset({TicketState.GENERATING_PROOF}), TicketState.COMPLETED,
    ),
    TicketEventKind.PROOF_REJECTED: (
        frozenset({TicketState.GENERATING_PROOF}), TicketState.CONFIRMING,
    ),
}


def is_valid_transition(from_state: TicketState, to_state: TicketState) -> bool:
    """检查状态转换是否合法"""
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def is_terminal(state: TicketState) -> bool:
    """是否终态"""
    return STATE_METADATA[state].is_terminal


def get_state_metadata(state: TicketState) -> StateMetadata:
    """获取状态元数据"""
    return STATE_METADATA[state]
