"""
预售系统 — 批量报价

并发创建 N 个一次性充值通道，全部成功才返回。
"""

import asyncio
from decimal import Decimal

from presale.clients.base import SwapBridgeClient
from presale.common.config import PurchaseConfig
from presale.common.enums import TicketEventKind
from presale.common.exceptions import BatchQuoteError
from presale.common.logging import get_logger
from presale.common.models import LaunchInfo, PaymentAsset, QuoteEstimate, QuoteRequest, SwapQuote
from presale.common.utils import compute_deposit_amount, to_base_units

from .ticket import Ticket, TicketEvent, apply_event

logger = get_logger(__name__)


class QuoteAcquirer:
    """
    批量报价
    
    同一批次的报价参数完全相同。已生成的充值地址无法撤销，
    批次失败时只记录失败序号，不创建任何票据。
    """
    
    def __init__(
        self,
        bridge: SwapBridgeClient,
        launch: LaunchInfo,
        config: PurchaseConfig | None = None,
        slippage_tolerance: int = 100,
    ):
        self.bridge = bridge
        self.launch = launch
        self.config = config or PurchaseConfig()
        self.slippage_tolerance = slippage_tolerance
    
    def build_request(
        self,
        deposit_amount: str,
        payment: PaymentAsset,
        refund_to: str,
    ) -> QuoteRequest:
        """单张票据的报价请求"""
        return QuoteRequest(
            origin_asset=payment.asset_id,
            destination_asset=self.launch.destination_asset,
            amount=to_base_units(deposit_amount, payment.decimals),
            recipient=self.launch.creator_wallet,
            refund_to=refund_to,
            slippage_tolerance=self.slippage_tolerance,
            app_fees=tuple(self.config.app_fees),
        )
    
    async def create_channels(
        self,
        qty: int,
        unit_price_usd: Decimal,
        payment: PaymentAsset,
        refund_to: str,
    ) -> list[Ticket]:
        """
        创建 qty 个充值通道
        
        Args:
            qty: 票据数量
            unit_price_usd: 单张票据价格（USD）
            payment: 支付资产
            refund_to: 退款地址
        
        Returns:
            qty 张 waiting-payment 状态的票据
        
        Raises:
            BatchQuoteError: 任一报价失败或充值地址重复
        """
        if qty <= 0:
            raise ValueError("票据数量必须大于 0")
        
        deposit_amount = compute_deposit_amount(
            unit_price_usd,
            payment.price_usd,
            places=self.config.deposit_decimals,
        )
        request = self.build_request(deposit_amount, payment, refund_to)
        
        logger.info(
            f"批量报价: {qty} 张, 每张 {deposit_amount} {payment.symbol}",
            extra={"launch_id": self.launch.launch_id, "amount": request.amount},
        )
        
        results = await asyncio.gather(
            *(self.bridge.create_swap_quote(request) for _ in range(qty)),
            return_exceptions=True,
        )
        
        quotes: list[SwapQuote] = []
        failed: list[int] = []
        errors: dict[int, str] = {}
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                failed.append(index)
                errors[index] = repr(result)
            else:
                quotes.append(result)
        
        if failed:
            logger.error(
                f"批量报价失败: {len(failed)}/{qty}",
                extra={"failed_indices": failed, "errors": errors},
            )
            raise BatchQuoteError(
                f"{len(failed)}/{qty} 个报价失败",
                failed_indices=failed,
                details={"errors": errors, "issued": [q.deposit_address for q in quotes]},
            )
        
        seen: set[str] = set()
        duplicates: list[int] = []
        for index, quote in enumerate(quotes):
            if quote.deposit_address in seen:
                duplicates.append(index)
            seen.add(quote.deposit_address)
        
        if duplicates:
            logger.error("批量报价返回重复充值地址", extra={"failed_indices": duplicates})
            raise BatchQuoteError(
                "充值地址重复",
                failed_indices=duplicates,
                details={"reason": "duplicate_deposit_address"},
            )
        
        tickets = []
        for index, quote in enumerate(quotes):
            ticket = Ticket(
                index=index,
                deposit_address=quote.deposit_address,
                deposit_memo=quote.deposit_memo,
                deposit_amount=deposit_amount,
                quote=QuoteEstimate.from_quote(quote),
            )
            tickets.append(apply_event(ticket, TicketEvent(kind=TicketEventKind.CHANNEL_CREATED)))
        
        logger.info(f"已创建 {qty} 个充值通道", extra={"launch_id": self.launch.launch_id})
        return tickets
