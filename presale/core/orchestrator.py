"""
预售系统 — 购买编排器

对外入口：供应检查 -> 批量报价 -> 会话（轮询 + 证明）。
同一时间只有一个活动会话，开始新会话会关闭旧会话。
"""

from decimal import Decimal

from presale.clients.base import HttpServiceClient, ProofServiceClient, SwapBridgeClient
from presale.common.config import Settings
from presale.common.exceptions import AvailabilityConflictError, SessionClosedError
from presale.common.logging import get_logger
from presale.common.models import LaunchAvailability, LaunchInfo, PaymentAsset, TicketReference
from presale.storage.references import TicketReferenceStore

from .availability import AvailabilityGuard
from .poller import StatusPoller
from .proof import ProofRequester
from .quotes import QuoteAcquirer
from .session import PurchaseSession, SessionStatus, StateChangeCallback
from .ticket import Ticket

logger = get_logger(__name__)


class PurchaseOrchestrator:
    """
    购买编排器
    
    使用示例:
        orchestrator = PurchaseOrchestrator(bridge, tee, launch, settings, store)
        session = await orchestrator.start_session(3, payment, refund_to, user_pubkey)
        ...
        await orchestrator.shutdown()
    """
    
    def __init__(
        self,
        bridge: SwapBridgeClient,
        tee: ProofServiceClient,
        launch: LaunchInfo,
        settings: Settings | None = None,
        store: TicketReferenceStore | None = None,
    ):
        self.bridge = bridge
        self.tee = tee
        self.launch = launch
        self.settings = settings or Settings()
        self.store = store
        
        self.guard = AvailabilityGuard()
        self._session: PurchaseSession | None = None
        self._callbacks: list[StateChangeCallback] = []
    
    @property
    def current_session(self) -> PurchaseSession | None:
        return self._session
    
    def require_session(self) -> PurchaseSession:
        """当前会话，不存在时抛出 SessionClosedError"""
        if self._session is None or self._session.is_closed:
            raise SessionClosedError("当前没有进行中的购买会话")
        return self._session
    
    # ========================================
    # 会话
    # ========================================
    
    async def check_availability(self) -> LaunchAvailability:
        """查询最新剩余额度"""
        return await self.tee.check_availability(self.launch)
    
    async def start_session(
        self,
        qty: int,
        payment: PaymentAsset,
        refund_to: str,
        user_pubkey: str,
        unit_price_usd: Decimal | None = None,
    ) -> PurchaseSession:
        """
        开始购买会话
        
        Args:
            qty: 票据数量
            payment: 支付资产
            refund_to: 退款地址
            user_pubkey: 买家公钥（写入证明）
            unit_price_usd: 单张票据价格，默认按发售信息计算
        
        Returns:
            已启动的会话
        
        Raises:
            AvailabilityConflictError: 数量无效或超过剩余供应
            BatchQuoteError: 任一报价失败
        """
        await self.reset()
        
        availability = await self.check_availability()
        remaining = availability.remaining_tickets(self.launch.tokens_per_proof)
        result = self.guard.authorize(qty, remaining, availability.is_sold_out)
        if not result.ok:
            raise AvailabilityConflictError(
                result.reason or "供应不足",
                details={
                    "requested_qty": qty,
                    "remaining_supply": remaining,
                    "stage": "availability",
                },
            )
        
        acquirer = QuoteAcquirer(
            self.bridge,
            self.launch,
            self.settings.purchase,
            slippage_tolerance=self.settings.bridge.slippage_tolerance,
        )
        tickets = await acquirer.create_channels(
            qty,
            unit_price_usd if unit_price_usd is not None else self.launch.ticket_price_usd,
            payment,
            refund_to,
        )
        
        session = PurchaseSession(
            tickets,
            self.launch,
            StatusPoller(self.bridge, self.settings.poller),
            ProofRequester(self.tee, self.launch, user_pubkey, self.store),
            self.settings.poller,
        )
        for callback in self._callbacks:
            session.on_ticket_state_changed(callback)
        
        self._session = session
        await session.start()
        
        logger.info(
            f"购买会话已开始: {session.session_id}, {qty} 张票据",
            extra={"launch_id": self.launch.launch_id, "payment": payment.symbol},
        )
        return session
    
    def on_ticket_state_changed(self, callback: StateChangeCallback) -> None:
        """注册回调，对当前和之后的会话生效"""
        self._callbacks.append(callback)
        if self._session is not None and not self._session.is_closed:
            self._session.on_ticket_state_changed(callback)
    
    def select_ticket(self, index: int) -> Ticket | None:
        return self.require_session().select_ticket(index)
    
    async def check_now(self, index: int) -> Ticket:
        return await self.require_session().check_now(index)
    
    async def retry(self, index: int) -> Ticket:
        return await self.require_session().retry(index)
    
    def download_proof(self, index: int) -> bytes:
        return self.require_session().download_proof(index)
    
    def status(self) -> SessionStatus:
        return self.require_session().status()
    
    async def reset(self) -> None:
        """关闭当前会话"""
        if self._session is not None:
            await self._session.close()
            self._session = None
    
    async def shutdown(self) -> None:
        """关闭会话并断开外部服务连接"""
        await self.reset()
        for client in (self.bridge, self.tee):
            if isinstance(client, HttpServiceClient):
                await client.disconnect()
        logger.info("购买编排器已关闭")
    
    # ========================================
    # 本地凭证
    # ========================================
    
    def stored_references(self, all_launches: bool = False) -> list[TicketReference]:
        """本地保存的证明凭证，默认只返回当前发售"""
        if self.store is None:
            return []
        if all_launches:
            return self.store.list_all()
        return self.store.list_by_launch(self.launch.launch_pda)
