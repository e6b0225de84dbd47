"""
预售系统 — 1Click 跨链兑换客户端

API 文档: https://1click.chaindefuser.com
"""

from typing import Any

import httpx
from pydantic import ValidationError

from presale.common.config import BridgeConfig
from presale.common.exceptions import SwapBridgeError
from presale.common.logging import get_logger
from presale.common.models import OneClickToken, QuoteRequest, SwapQuote, SwapStatusSnapshot
from presale.common.retry import retry_with_backoff
from presale.common.utils import generate_deadline

from .base import HttpServiceClient, SwapBridgeClient

logger = get_logger(__name__)

# 不在支付选项中展示的代币
HIDDEN_TOKEN_SYMBOLS = {"TESTNEBULA", "wNEAR"}


class OneClickClient(HttpServiceClient, SwapBridgeClient):
    """
    1Click 客户端
    
    支持：
    - 代币列表
    - 报价（生成充值地址）
    - 按充值地址查询兑换状态
    """
    
    error_class = SwapBridgeError
    
    def __init__(
        self,
        config: BridgeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or BridgeConfig()
        headers = {}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        super().__init__(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            headers=headers,
            transport=transport,
        )
    
    @property
    def name(self) -> str:
        return "1click"
    
    # ========================================
    # 代币
    # ========================================
    
    @retry_with_backoff(max_retries=2, base_delay=0.5)
    async def list_tokens(self) -> list[OneClickToken]:
        """获取所有支持的代币"""
        data = await self._request("GET", "/tokens")
        return [OneClickToken.model_validate(item) for item in data]
    
    @staticmethod
    def tokens_by_blockchain(
        tokens: list[OneClickToken],
        blockchain: str,
    ) -> list[OneClickToken]:
        """按链筛选代币"""
        return [
            token for token in tokens
            if token.blockchain.lower() == blockchain.lower()
            and token.symbol not in HIDDEN_TOKEN_SYMBOLS
        ]
    
    async def find_token(self, symbol: str, blockchain: str | None = None) -> OneClickToken | None:
        """按符号（和链）查找代币"""
        for token in await self.list_tokens():
            if blockchain and token.blockchain.lower() != blockchain.lower():
                continue
            if token.symbol.lower() == symbol.lower():
                return token
        return None
    
    # ========================================
    # 报价与状态
    # ========================================
    
    def _build_quote_body(self, request: QuoteRequest) -> dict[str, Any]:
        """构造报价请求体"""
        return {
            "dry": False,
            "swapType": "FLEX_INPUT",
            "slippageTolerance": request.slippage_tolerance or self.config.slippage_tolerance,
            "originAsset": request.origin_asset,
            "depositType": "ORIGIN_CHAIN",
            "destinationAsset": request.destination_asset,
            "amount": request.amount,
            "refundTo": request.refund_to,
            "refundType": "ORIGIN_CHAIN",
            "recipient": request.recipient,
            "recipientType": "DESTINATION_CHAIN",
            "deadline": generate_deadline(self.config.deadline_minutes),
            "referral": self.config.referral,
            "quoteWaitingTimeMs": self.config.quote_waiting_time_ms,
            "appFees": [fee.model_dump() for fee in request.app_fees],
        }
    
    async def create_swap_quote(self, request: QuoteRequest) -> SwapQuote:
        """创建报价，每次调用生成新的充值地址"""
        body = self._build_quote_body(request)
        logger.debug("1Click 报价请求", extra={"body": body})
        
        data = await self._request("POST", "/quote", json=body)
        
        try:
            quote = SwapQuote.model_validate(data["quote"])
        except (KeyError, TypeError, ValidationError) as e:
            raise SwapBridgeError(
                f"1Click 报价响应无效: {e}",
                details={"stage": "quote"},
            ) from e
        
        logger.info(
            f"报价已创建: {quote.deposit_address}",
            extra={"amount_in": quote.amount_in_formatted, "amount_out": quote.amount_out_formatted},
        )
        return quote
    
    async def check_swap_status(self, deposit_address: str) -> SwapStatusSnapshot:
        """查询兑换状态"""
        data = await self._request(
            "GET",
            "/status",
            params={"depositAddress": deposit_address},
        )
        if not isinstance(data, dict) or "status" not in data:
            raise SwapBridgeError(
                "1Click 状态响应无效",
                details={"deposit_address": deposit_address, "stage": "status"},
            )
        try:
            return SwapStatusSnapshot.from_status(data["status"], data.get("swapDetails"))
        except (AttributeError, TypeError, ValidationError) as e:
            raise SwapBridgeError(
                f"1Click 状态响应无效: {e}",
                details={"deposit_address": deposit_address, "stage": "status"},
            ) from e
