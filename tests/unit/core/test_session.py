"""购买会话测试"""

import asyncio
from decimal import Decimal

import pytest

from presale.common.enums import SessionState, SwapStatus, TicketNotice, TicketState
from presale.common.exceptions import (
    ProofNotReadyError,
    SessionClosedError,
    TicketNotFoundError,
    TransientServiceError,
)
from presale.core.poller import StatusPoller
from presale.core.proof import ProofRequester
from presale.core.quotes import QuoteAcquirer
from presale.core.session import PurchaseSession
from tests.mocks.services import (
    TOKENS_PER_PROOF,
    MockProofService,
    MockSwapBridge,
    make_launch,
    make_payment,
    make_settings,
    wait_until,
)


@pytest.fixture
def bridge():
    return MockSwapBridge()


@pytest.fixture
def tee():
    return MockProofService()


@pytest.fixture
async def make_session(bridge, tee):
    """创建会话，测试结束后关闭"""
    sessions: list[PurchaseSession] = []
    
    async def factory(qty: int = 2, **poller) -> PurchaseSession:
        settings = make_settings(**poller)
        launch = make_launch()
        tickets = await QuoteAcquirer(bridge, launch, settings.purchase).create_channels(
            qty, Decimal("5"), make_payment(), "t1Refund",
        )
        session = PurchaseSession(
            tickets,
            launch,
            StatusPoller(bridge, settings.poller),
            ProofRequester(tee, launch, "UserPubkey111"),
            settings.poller,
        )
        sessions.append(session)
        return session
    
    yield factory
    
    for session in sessions:
        await session.close()


def _states(session: PurchaseSession, index: int) -> list[TicketState]:
    history = [c for c in session.history if c.index == index]
    return [history[0].from_state] + [c.to_state for c in history] if history else []


class TestSessionLifecycle:
    """会话生命周期测试"""
    
    @pytest.mark.asyncio
    async def test_start_arms_watchers(self, make_session):
        session = await make_session(3)
        await session.start()
        
        assert [t.state for t in session.tickets] == [TicketState.CONFIRMING] * 3
        assert session.watching == [0, 1, 2]
        assert session.selected_index == 0
        assert session.state == SessionState.ACTIVE
    
    @pytest.mark.asyncio
    async def test_all_completed(self, make_session, bridge):
        bridge.set_default_status(SwapStatus.SUCCESS)
        session = await make_session(2)
        await session.start()
        
        await wait_until(session.all_completed)
        
        assert session.completed_count == 2
        assert session.state == SessionState.SUCCESS
        assert session.total_claim_amount() == 2 * TOKENS_PER_PROOF
        assert len(session.completed_tickets()) == 2
        await wait_until(lambda: session.watching == [])
        
        status = session.status()
        assert (status.completed_count, status.total) == (2, 2)
    
    @pytest.mark.asyncio
    async def test_close(self, make_session):
        session = await make_session(2)
        await session.start()
        
        await session.close()
        
        assert session.state == SessionState.CLOSED
        assert session.watching == []
        with pytest.raises(SessionClosedError):
            await session.check_now(0)
    
    @pytest.mark.asyncio
    async def test_unknown_ticket(self, make_session):
        session = await make_session(2)
        with pytest.raises(TicketNotFoundError) as exc_info:
            session.get_ticket(2)
        assert exc_info.value.details["ticket_index"] == 2


class TestSwapOutcomes:
    """兑换结果处理测试"""
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,notice",
        [
            (SwapStatus.FAILED, TicketNotice.SWAP_FAILED),
            (SwapStatus.REFUNDED, TicketNotice.FUNDS_REFUNDED),
            (SwapStatus.INCOMPLETE_DEPOSIT, TicketNotice.INCOMPLETE_DEPOSIT),
        ],
    )
    async def test_failure_returns_to_waiting(self, make_session, bridge, status, notice):
        bridge.set_status("deposit-0", status)
        session = await make_session(1)
        await session.start()
        
        await wait_until(lambda: session.get_ticket(0).state == TicketState.WAITING_PAYMENT)
        
        assert session.history[-1].notice == notice
        assert session.get_ticket(0).swap_status.status == status
        await wait_until(lambda: session.watching == [])
    
    @pytest.mark.asyncio
    async def test_unexpected_status_error_not_stranded(self, make_session, bridge):
        """状态查询抛出非服务异常时票据继续被监控"""
        bridge.raise_on_status(ValueError("malformed status"))
        bridge.set_status("deposit-0", SwapStatus.SUCCESS)
        session = await make_session(1)
        await session.start()
        
        await wait_until(session.all_completed)
        
        assert bridge.status_calls >= 2
        assert session.get_ticket(0).is_completed
    
    @pytest.mark.asyncio
    async def test_watch_expired_then_retry(self, make_session):
        session = await make_session(1, watch_timeout_seconds=0.05)
        await session.start()
        
        await wait_until(lambda: session.get_ticket(0).state == TicketState.FAILED)
        assert session.history[-1].notice == TicketNotice.WATCH_EXPIRED
        
        ticket = await session.retry(0)
        
        assert ticket.state == TicketState.CONFIRMING
        assert session.watching == [0]
        assert _states(session, 0)[-3:] == [
            TicketState.FAILED,
            TicketState.WAITING_PAYMENT,
            TicketState.CONFIRMING,
        ]


class TestProofHandling:
    """证明处理测试"""
    
    @pytest.mark.asyncio
    async def test_unverified_proof_reverts(self, make_session, bridge, tee):
        bridge.set_default_status(SwapStatus.SUCCESS)
        tee.set_verified(False)
        session = await make_session(1, max_proof_attempts=3)
        await session.start()
        
        await wait_until(lambda: session.proof_attempts(0) == 3)
        await wait_until(lambda: session.watching == [])
        
        assert session.get_ticket(0).state == TicketState.CONFIRMING
        assert session.get_ticket(0).proof is None
        assert session.completed_count == 0
        assert tee.proof_calls == 3
        assert session.history[-1].notice == TicketNotice.PROOF_REJECTED
    
    @pytest.mark.asyncio
    async def test_manual_check_after_attempts_exhausted(self, make_session, bridge, tee):
        bridge.set_default_status(SwapStatus.SUCCESS)
        tee.set_verified(False)
        session = await make_session(1, max_proof_attempts=1)
        await session.start()
        await wait_until(lambda: session.proof_attempts(0) == 1)
        await wait_until(lambda: session.get_ticket(0).state == TicketState.CONFIRMING)
        
        tee.set_verified(True)
        await session.check_now(0)
        
        await wait_until(session.all_completed)
        assert session.get_ticket(0).proof is not None
    
    @pytest.mark.asyncio
    async def test_download_proof(self, make_session, bridge):
        bridge.set_status("deposit-0", SwapStatus.SUCCESS)
        session = await make_session(2)
        await session.start()
        
        await wait_until(lambda: session.get_ticket(0).is_completed)
        
        assert session.download_proof(0)[:2] == b"PK"
        assert session.proof_filename(0) == "proof-launch-1-ref-deposit-0.zip"
        with pytest.raises(ProofNotReadyError):
            session.download_proof(1)


class TestCallerOperations:
    """调用方操作测试"""
    
    @pytest.mark.asyncio
    async def test_check_now_completed_is_noop(self, make_session, bridge):
        bridge.set_default_status(SwapStatus.SUCCESS)
        session = await make_session(1)
        await session.start()
        await wait_until(session.all_completed)
        await wait_until(lambda: session.watching == [])
        
        calls = bridge.status_calls
        history = len(session.history)
        ticket = await session.check_now(0)
        
        assert ticket.state == TicketState.COMPLETED
        assert bridge.status_calls == calls
        assert len(session.history) == history
    
    @pytest.mark.asyncio
    async def test_check_now_transient_error(self, make_session, bridge):
        session = await make_session(1)
        await session.start()
        bridge.set_status_error(True)
        
        with pytest.raises(TransientServiceError):
            await session.check_now(0)
        assert session.get_ticket(0).state == TicketState.CONFIRMING
    
    @pytest.mark.asyncio
    async def test_check_now_rearms_waiting_ticket(self, make_session, bridge):
        bridge.set_status("deposit-0", SwapStatus.FAILED)
        session = await make_session(1)
        await session.start()
        await wait_until(lambda: session.get_ticket(0).state == TicketState.WAITING_PAYMENT)
        await wait_until(lambda: session.watching == [])
        
        bridge.set_status("deposit-0", SwapStatus.PENDING_DEPOSIT)
        ticket = await session.check_now(0)
        
        assert ticket.state == TicketState.CONFIRMING
        assert session.watching == [0]
    
    @pytest.mark.asyncio
    async def test_check_now_success(self, make_session, bridge):
        session = await make_session(1, interval_seconds=60)
        await session.start()
        
        bridge.set_status("deposit-0", SwapStatus.SUCCESS)
        ticket = await session.check_now(0)
        
        assert ticket.state == TicketState.GENERATING_PROOF
        await wait_until(session.all_completed)
    
    @pytest.mark.asyncio
    async def test_concurrent_checks_complete_once(self, make_session, bridge, tee):
        """定时轮询和多次手动检查并发时只完成一次"""
        session = await make_session(1, interval_seconds=0.001)
        await session.start()
        bridge.set_status("deposit-0", SwapStatus.SUCCESS)
        
        await asyncio.gather(*(session.check_now(0) for _ in range(5)))
        await wait_until(session.all_completed)
        await wait_until(lambda: session.watching == [])
        
        assert session.completed_count == 1
        assert tee.proof_calls == 1
        assert _states(session, 0) == [
            TicketState.WAITING_PAYMENT,
            TicketState.CONFIRMING,
            TicketState.GENERATING_PROOF,
            TicketState.COMPLETED,
        ]
    
    @pytest.mark.asyncio
    async def test_select_ticket(self, make_session, bridge):
        bridge.set_status("deposit-0", SwapStatus.SUCCESS)
        session = await make_session(3)
        await session.start()
        
        await wait_until(lambda: session.get_ticket(0).is_completed)
        assert session.selected_index == 1
        
        session.select_ticket(2)
        assert session.selected_index == 2
        
        session.select_ticket(0)
        assert session.selected_index == 2
        
        with pytest.raises(TicketNotFoundError):
            session.select_ticket(5)
    
    @pytest.mark.asyncio
    async def test_callbacks(self, make_session, bridge):
        sync_changes = []
        async_changes = []
        
        async def async_callback(change):
            async_changes.append(change)
        
        def broken_callback(change):
            raise RuntimeError("回调错误")
        
        bridge.set_default_status(SwapStatus.SUCCESS)
        session = await make_session(1)
        session.on_ticket_state_changed(broken_callback)
        session.on_ticket_state_changed(sync_changes.append)
        session.on_ticket_state_changed(async_callback)
        await session.start()
        
        await wait_until(session.all_completed)
        
        assert [c.to_state for c in sync_changes] == [
            TicketState.CONFIRMING,
            TicketState.GENERATING_PROOF,
            TicketState.COMPLETED,
        ]
        assert len(async_changes) == 3
