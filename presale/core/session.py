"""
预售系统 — 购买会话

持有票据、watcher、证明任务和完成计数。
票据状态只通过 _transition 修改：先同步检查源状态并写入，再执行回调，
因此定时轮询和手动检查可以重复触发而不会重复转换。
"""

import asyncio
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from presale.common.config import PollerConfig
from presale.common.enums import SessionState, TicketEventKind, TicketState
from presale.common.exceptions import ProofNotReadyError, SessionClosedError, TicketNotFoundError
from presale.common.logging import TicketLoggerAdapter, get_logger
from presale.common.models import LaunchInfo, ProofResult, SwapStatusSnapshot, TicketProof

from .archive import build_proof_zip, proof_zip_filename
from .poller import StatusHandler, StatusPoller, classify_status
from .proof import ProofOutcome, ProofRequester
from .ticket import (
    EVENT_NOTICES,
    Ticket,
    TicketEvent,
    TicketStateChange,
    apply_event,
    can_apply,
)

logger = get_logger(__name__)

StateChangeCallback = Callable[[TicketStateChange], Any]


@dataclass(frozen=True)
class SessionStatus:
    """会话进度"""
    session_id: str
    completed_count: int
    total: int
    state: SessionState
    selected_index: int | None


class PurchaseSession(StatusHandler):
    """
    购买会话
    
    使用示例:
        session = PurchaseSession(tickets, launch, poller, requester)
        session.on_ticket_state_changed(print)
        await session.start()
        ...
        await session.close()
    """
    
    def __init__(
        self,
        tickets: Iterable[Ticket],
        launch: LaunchInfo,
        poller: StatusPoller,
        proof_requester: ProofRequester,
        config: PollerConfig | None = None,
        session_id: str | None = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.launch = launch
        self.config = config or poller.config
        
        self._tickets: list[Ticket] = sorted(tickets, key=lambda t: t.index)
        if [t.index for t in self._tickets] != list(range(len(self._tickets))):
            raise ValueError("票据序号必须为 0..N-1")
        
        self._poller = poller
        self._proof_requester = proof_requester
        self._proof_tasks: dict[int, asyncio.Task] = {}
        self._proof_attempts: dict[int, int] = {}
        
        self._state = SessionState.ACTIVE
        self._completed_count = sum(1 for t in self._tickets if t.is_completed)
        self._selected_index: int | None = self._first_open_index()
        
        self._callbacks: list[StateChangeCallback] = []
        self._history: list[TicketStateChange] = []
        self._log = TicketLoggerAdapter(logger, {"session_id": self.session_id})
    
    # ========================================
    # 属性
    # ========================================
    
    @property
    def state(self) -> SessionState:
        return self._state
    
    @property
    def tickets(self) -> list[Ticket]:
        return list(self._tickets)
    
    @property
    def total(self) -> int:
        return len(self._tickets)
    
    @property
    def completed_count(self) -> int:
        return self._completed_count
    
    @property
    def selected_index(self) -> int | None:
        return self._selected_index
    
    @property
    def selected_ticket(self) -> Ticket | None:
        if self._selected_index is None:
            return None
        return self._tickets[self._selected_index]
    
    @property
    def history(self) -> list[TicketStateChange]:
        return list(self._history)
    
    @property
    def is_closed(self) -> bool:
        return self._state == SessionState.CLOSED
    
    @property
    def watching(self) -> list[int]:
        """有运行中 watcher 的票据序号"""
        return self._poller.active_indices
    
    def get_ticket(self, index: int) -> Ticket:
        """获取票据"""
        if not 0 <= index < len(self._tickets):
            raise TicketNotFoundError(
                f"票据不存在: {index}",
                details={"ticket_index": index, "total": len(self._tickets)},
            )
        return self._tickets[index]
    
    def proof_attempts(self, index: int) -> int:
        return self._proof_attempts.get(index, 0)
    
    # ========================================
    # 生命周期
    # ========================================
    
    async def start(self) -> None:
        """为所有等待付款的票据启动 watcher"""
        self._ensure_open()
        for ticket in self._tickets:
            await self._arm(ticket.index, reason="会话启动")
        self._log.info(f"会话已启动: {self.total} 张票据")
    
    async def close(self) -> None:
        """关闭会话，停止所有 watcher 和证明任务"""
        if self._state == SessionState.CLOSED:
            return
        
        self._state = SessionState.CLOSED
        await self._poller.drain()
        
        current = asyncio.current_task()
        for index, task in list(self._proof_tasks.items()):
            if task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._proof_tasks.clear()
        
        self._log.info(f"会话已关闭: 完成 {self._completed_count}/{self.total}")
    
    def on_ticket_state_changed(self, callback: StateChangeCallback) -> None:
        """注册票据状态变化回调（同步或异步函数）"""
        self._callbacks.append(callback)
    
    # ========================================
    # 调用方操作
    # ========================================
    
    def select_ticket(self, index: int) -> Ticket | None:
        """
        切换当前展示的票据
        
        已完成的票据不可选中，此时保持原选择。
        """
        self._ensure_open()
        ticket = self.get_ticket(index)
        if not ticket.is_completed:
            self._selected_index = index
        return self.selected_ticket
    
    async def check_now(self, index: int) -> Ticket:
        """
        立即查询一次兑换状态
        
        已完成或正在生成证明的票据不发起查询。
        查询失败时抛出异常，票据状态不变。
        
        Raises:
            TransientServiceError: 网络或服务暂时不可用
        """
        self._ensure_open()
        ticket = self.get_ticket(index)
        if ticket.state in (TicketState.COMPLETED, TicketState.GENERATING_PROOF):
            return ticket
        
        snapshot = await self._poller.check_status(ticket.deposit_address)
        
        if self._tickets[index].state == TicketState.FAILED:
            await self._transition(index, TicketEventKind.RETRY_REQUESTED, reason="手动检查")
        if self._tickets[index].state == TicketState.WAITING_PAYMENT:
            await self._transition(index, TicketEventKind.WATCH_STARTED, reason="手动检查")
        
        terminal = await self._handle_snapshot(index, snapshot)
        if not terminal and self._tickets[index].state == TicketState.CONFIRMING:
            self._poller.start(index, ticket.deposit_address, self)
        
        return self._tickets[index]
    
    async def retry(self, index: int) -> Ticket:
        """重新监控已失效或等待付款的票据"""
        self._ensure_open()
        ticket = self.get_ticket(index)
        
        if ticket.state == TicketState.FAILED:
            await self._transition(index, TicketEventKind.RETRY_REQUESTED, reason="重试")
        if self._tickets[index].state == TicketState.WAITING_PAYMENT:
            self._proof_attempts.pop(index, None)
            await self._arm(index, reason="重试")
        
        return self._tickets[index]
    
    def all_completed(self) -> bool:
        return self._completed_count == len(self._tickets)
    
    def completed_tickets(self) -> list[TicketProof]:
        """已完成票据的证明摘要（按序号）"""
        return [t.proof for t in self._tickets if t.is_completed and t.proof is not None]
    
    def total_claim_amount(self) -> int:
        """已完成票据的领取总量（最小单位）"""
        return sum(int(proof.claim_amount) for proof in self.completed_tickets())
    
    def status(self) -> SessionStatus:
        return SessionStatus(
            session_id=self.session_id,
            completed_count=self._completed_count,
            total=len(self._tickets),
            state=self._state,
            selected_index=self._selected_index,
        )
    
    def download_proof(self, index: int) -> bytes:
        """
        打包票据证明
        
        Raises:
            ProofNotReadyError: 票据尚未完成
        """
        ticket = self.get_ticket(index)
        if not ticket.is_completed or ticket.proof_result is None:
            raise ProofNotReadyError(
                f"票据 {index} 尚未完成",
                details={"ticket_index": index, "stage": ticket.state.value},
            )
        return build_proof_zip(ticket.proof_result, self.launch.decimals)
    
    def proof_filename(self, index: int) -> str:
        ticket = self.get_ticket(index)
        if ticket.proof_result is None or ticket.proof_result.metadata is None:
            raise ProofNotReadyError(
                f"票据 {index} 尚未完成",
                details={"ticket_index": index, "stage": ticket.state.value},
            )
        return proof_zip_filename(ticket.proof_result.metadata)
    
    # ========================================
    # StatusHandler
    # ========================================
    
    async def on_swap_status(self, index: int, snapshot: SwapStatusSnapshot) -> bool:
        return await self._handle_snapshot(index, snapshot)
    
    async def on_watch_expired(self, index: int) -> None:
        await self._transition(index, TicketEventKind.WATCH_EXPIRED, reason="超过监控截止时间")
    
    # ========================================
    # 内部
    # ========================================
    
    def _ensure_open(self) -> None:
        if self._state == SessionState.CLOSED:
            raise SessionClosedError(
                "会话已关闭",
                details={"session_id": self.session_id},
            )
    
    def _first_open_index(self) -> int | None:
        for ticket in self._tickets:
            if not ticket.is_completed:
                return ticket.index
        return None
    
    async def _arm(self, index: int, reason: str) -> None:
        """waiting-payment -> confirming 并启动 watcher"""
        change = await self._transition(index, TicketEventKind.WATCH_STARTED, reason=reason)
        if change is not None and self._tickets[index].state == TicketState.CONFIRMING:
            self._poller.start(index, self._tickets[index].deposit_address, self)
    
    async def _handle_snapshot(self, index: int, snapshot: SwapStatusSnapshot) -> bool:
        """
        处理查询结果
        
        Returns:
            True 表示该票据不再需要 watcher
        """
        if self._state == SessionState.CLOSED:
            return True
        
        ticket = self._tickets[index]
        if ticket.state != TicketState.CONFIRMING:
            return True
        
        self._tickets[index] = ticket.with_swap_status(snapshot)
        
        kind = classify_status(snapshot)
        if kind is None:
            return False
        
        change = await self._transition(index, kind, reason=snapshot.status.value)
        await self._poller.stop(index)
        
        if change is not None and kind == TicketEventKind.SWAP_SUCCEEDED:
            self._spawn_proof(index)
        return True
    
    def _spawn_proof(self, index: int) -> None:
        task = self._proof_tasks.get(index)
        if task is not None and not task.done():
            return
        self._proof_tasks[index] = asyncio.create_task(
            self._run_proof(index),
            name=f"ticket-proof-{index}",
        )
    
    async def _run_proof(self, index: int) -> None:
        """请求证明并根据结果转换票据状态"""
        try:
            try:
                outcome = await self._proof_requester.request_proof(self._tickets[index])
            except Exception as e:
                self._log.error(f"票据 {index} 证明请求异常: {e}", exc_info=True)
                outcome = ProofOutcome(accepted=False, error=str(e))
            
            if self._state == SessionState.CLOSED:
                return
            if self._tickets[index].state != TicketState.GENERATING_PROOF:
                return
            
            if outcome.accepted:
                await self._complete(index, outcome.result)
            else:
                await self._reject_proof(index, outcome.error or "证明未通过校验")
        finally:
            if self._proof_tasks.get(index) is asyncio.current_task():
                del self._proof_tasks[index]
    
    async def _complete(self, index: int, result: ProofResult | None) -> None:
        await self._transition(index, TicketEventKind.PROOF_VERIFIED, proof_result=result)
    
    async def _reject_proof(self, index: int, error: str) -> None:
        attempts = self._proof_attempts.get(index, 0) + 1
        self._proof_attempts[index] = attempts
        
        change = await self._transition(index, TicketEventKind.PROOF_REJECTED, reason=error)
        if change is None:
            return
        
        if attempts < self.config.max_proof_attempts:
            self._poller.start(index, self._tickets[index].deposit_address, self)
        else:
            self._log.warning(
                f"票据 {index} 证明已失败 {attempts} 次，等待手动检查",
                extra={"ticket_index": index, "stage": "proof"},
            )
    
    async def _transition(
        self,
        index: int,
        kind: TicketEventKind,
        reason: str = "",
        proof_result: ProofResult | None = None,
    ) -> TicketStateChange | None:
        """
        唯一的票据写入路径
        
        源状态不匹配时返回 None（重复触发的事件被忽略）。
        """
        if self._state == SessionState.CLOSED:
            return None
        
        ticket = self._tickets[index]
        if not can_apply(ticket, kind):
            self._log.debug(
                f"忽略事件 {kind.value}: 票据 {index} 当前 {ticket.state.value}",
                extra={"ticket_index": index},
            )
            return None
        
        updated = apply_event(
            ticket,
            TicketEvent(
                kind=kind,
                reason=reason,
                proof_result=proof_result,
                token_decimals=self.launch.decimals,
            ),
        )
        self._tickets[index] = updated
        
        change = TicketStateChange(
            index=index,
            from_state=ticket.state,
            to_state=updated.state,
            event=kind,
            reason=reason,
            notice=EVENT_NOTICES.get(kind),
            ticket=updated,
        )
        self._history.append(change)
        
        finished = False
        if updated.state == TicketState.COMPLETED:
            finished = self._record_completion(index)
        
        self._log.info(
            f"票据 {index}: {ticket.state.value} -> {updated.state.value}",
            extra={"ticket_index": index, "event": kind.value, "reason": reason},
        )
        
        await self._execute_callbacks(change)
        
        if finished:
            await self._poller.drain()
        
        return change
    
    def _record_completion(self, index: int) -> bool:
        """
        完成计数（仅 generating-proof -> completed 调用）
        
        Returns:
            True 表示会话刚刚全部完成
        """
        self._completed_count += 1
        
        if self._selected_index == index:
            self._selected_index = self._first_open_index()
            if self._selected_index is None:
                self._selected_index = index
        
        if self._completed_count == len(self._tickets) and self._state == SessionState.ACTIVE:
            self._state = SessionState.SUCCESS
            self._log.info(
                f"全部票据已完成: {self._completed_count}/{len(self._tickets)}",
                extra={"total_claim_amount": self.total_claim_amount()},
            )
            return True
        return False
    
    async def _execute_callbacks(self, change: TicketStateChange) -> None:
        """执行状态变化回调"""
        for callback in self._callbacks:
            try:
                result = callback(change)
                if hasattr(result, "__await__"):
                    await result
            except Exception as e:
                self._log.error(f"状态回调执行失败: {e}", exc_info=True)
