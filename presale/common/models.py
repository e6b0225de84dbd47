"""
预售系统 — 数据模型

使用 Pydantic v2。外部服务返回驼峰字段，统一通过别名解析为蛇形字段。
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator
from pydantic.alias_generators import to_camel

from .enums import ReferenceStatus, SwapStatus
from .utils import format_token_amount, utc_now


class CamelModel(BaseModel):
    """驼峰别名的不可变模型"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ============================================================
# 发售信息
# ============================================================

class LaunchInfo(BaseModel):
    """
    发售信息

    price_per_token 以 1e-6 USD 为单位；数量均为代币最小单位。
    """
    model_config = ConfigDict(frozen=True)

    launch_id: str
    launch_pda: str
    token_mint: str = ""
    token_symbol: str
    token_name: str = ""
    token_image_uri: str | None = None
    price_per_token: int = Field(gt=0)
    amount_to_sell: int = Field(gt=0)
    decimals: int = Field(default=9, ge=0, le=18)
    tokens_per_proof: int = Field(gt=0)
    creator_wallet: str
    destination_asset: str = Field(description="创建者收款资产 ID，如 ZEC")

    @property
    def ticket_price_usd(self) -> Decimal:
        """单张票据价格（USD）"""
        tokens = Decimal(self.tokens_per_proof).scaleb(-self.decimals)
        return tokens * Decimal(self.price_per_token).scaleb(-6)


class LaunchAvailability(BaseModel):
    """TEE 返回的发售剩余额度"""
    model_config = ConfigDict(frozen=True)

    launch_id: str
    amount_to_sell: int = 0
    total_tokens_reserved: int = 0
    tokens_available: int = 0
    price_per_token_usd: float = 0.0
    max_usd_available: str = "0"
    is_sold_out: bool = False
    tickets_created: int = 0

    def remaining_tickets(self, tokens_per_proof: int) -> int:
        """剩余可售票据数"""
        if tokens_per_proof <= 0:
            return 0
        return max(self.tokens_available, 0) // tokens_per_proof


class LaunchStats(BaseModel):
    """单个发售的统计"""
    launch_id: str
    tickets_created: int = 0
    shielded_value_usd: str = "0"
    total_tokens_sold: int = 0
    proof_references: list[str] = Field(default_factory=list)


# ============================================================
# 跨链兑换（1Click）
# ============================================================

class PaymentAsset(BaseModel):
    """买家支付资产"""
    model_config = ConfigDict(frozen=True)

    asset_id: str
    symbol: str
    decimals: int = Field(ge=0, le=30)
    price_usd: Decimal = Field(gt=0)
    blockchain: str = ""


class OneClickToken(CamelModel):
    """1Click 支持的代币"""
    blockchain: str
    symbol: str
    asset_id: str
    decimals: int
    price: float = 0.0


class AppFee(BaseModel):
    """应用费用（基点）"""
    model_config = ConfigDict(frozen=True)

    recipient: str
    fee: int = Field(ge=0, le=10000)


class QuoteRequest(BaseModel):
    """报价请求"""
    model_config = ConfigDict(frozen=True)

    origin_asset: str
    destination_asset: str
    amount: str = Field(description="最小单位数量")
    recipient: str
    refund_to: str
    slippage_tolerance: int = 100
    app_fees: tuple[AppFee, ...] = ()


class SwapQuote(CamelModel):
    """1Click 报价（含一次性充值地址）"""
    deposit_address: str
    deposit_memo: str | None = None
    deadline: str | None = None
    amount_in: str = "0"
    amount_in_formatted: str = "0"
    amount_in_usd: str = "0"
    amount_out: str = "0"
    amount_out_formatted: str = "0"
    amount_out_usd: str | None = None
    min_amount_out: str = "0"
    time_estimate: int | None = None


class QuoteEstimate(BaseModel):
    """票据上保存的报价摘要"""
    model_config = ConfigDict(frozen=True)

    expected_out: str
    min_amount_out: str
    time_estimate: int
    amount_in_usd: str
    estimated_value_usd: str
    deadline: str | None = None

    @classmethod
    def from_quote(cls, quote: SwapQuote) -> "QuoteEstimate":
        return cls(
            expected_out=quote.amount_out_formatted,
            min_amount_out=quote.min_amount_out,
            time_estimate=quote.time_estimate or 60,
            amount_in_usd=quote.amount_in_usd,
            estimated_value_usd=quote.amount_out_usd or quote.amount_in_usd,
            deadline=quote.deadline,
        )


class SwapStatusSnapshot(BaseModel):
    """一次状态查询的结果"""
    model_config = ConfigDict(frozen=True)

    status: SwapStatus
    is_complete: bool = False
    is_success: bool = False
    is_failed: bool = False
    received_amount_formatted: str | None = None
    swap_details: dict[str, Any] = Field(default_factory=dict)
    checked_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_status(
        cls,
        status: SwapStatus | str,
        swap_details: dict[str, Any] | None = None,
    ) -> "SwapStatusSnapshot":
        """按状态值归一化各标志位"""
        status = SwapStatus.parse(status) if isinstance(status, str) else status
        details = swap_details or {}
        return cls(
            status=status,
            is_complete=status in (SwapStatus.SUCCESS, SwapStatus.FAILED, SwapStatus.REFUNDED),
            is_success=status == SwapStatus.SUCCESS,
            is_failed=status == SwapStatus.FAILED,
            received_amount_formatted=details.get("amountOutFormatted"),
            swap_details=details,
        )


# ============================================================
# TEE 证明
# ============================================================

class ProofRequest(BaseModel):
    """证明请求（按票据固定额度，不按金额比例拆分）"""
    model_config = ConfigDict(frozen=True)

    deposit_address: str
    creator_address: str
    launch_id: str
    launch_pda: str
    token_mint: str
    token_symbol: str
    price_per_token: int
    amount_to_sell: int
    decimals: int
    tokens_per_proof: int
    user_pubkey: str

    def to_payload(self) -> dict[str, Any]:
        """TEE 加密前的明文载荷"""
        return {
            "deposit_address": self.deposit_address,
            "creator_address": self.creator_address,
            "launch_pda": self.launch_pda,
            "user_pubkey": self.user_pubkey,
            "token_symbol": self.token_symbol,
            "launch_id": self.launch_id,
            "price_per_token": self.price_per_token,
            "amount_to_sell": self.amount_to_sell,
            "decimals": self.decimals,
            "tokens_per_proof": self.tokens_per_proof,
        }


class ProofVerification(BaseModel):
    """TEE 校验结果"""
    model_config = ConfigDict(frozen=True)

    verified: StrictBool = False
    swap_status: str | None = None
    recipient_verified: bool | None = None
    asset_verified: bool | None = None
    error: str | None = None


class ProofMetadata(CamelModel):
    """证明元数据"""
    proof_reference: str
    user_pubkey: str = ""
    deposit_address: str
    swap_amount_in: str = "0"
    swap_amount_usd: str = "0"
    swap_token_symbol: str = ""
    claim_amount: str
    launch_id: str
    launch_pda: str = ""
    token_mint: str = ""
    token_symbol: str = ""
    price_per_token: str = "0"
    creator_wallet: str = ""
    created_at: str
    swap_timestamp: int = 0

    @field_validator("claim_amount", "price_per_token", "swap_amount_in", "swap_amount_usd", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return str(v)
        return v


class ProofResult(BaseModel):
    """TEE 完整返回（含证明字节，仅保存在内存和下载文件中）"""
    model_config = ConfigDict(frozen=True)

    proof: bytes = b""
    public_inputs: bytes = b""
    compact_proof: bytes = b""
    verification: ProofVerification = Field(default_factory=ProofVerification)
    metadata: ProofMetadata | None = None
    error: str | None = None

    @field_validator("proof", "public_inputs", "compact_proof", mode="before")
    @classmethod
    def _to_bytes(cls, v: Any) -> Any:
        # TEE 以整数数组返回字节
        if isinstance(v, list):
            return bytes(v)
        return v

    @property
    def is_verified(self) -> bool:
        """仅当 verified 显式为 True 且无错误时视为通过"""
        return (
            self.verification.verified is True
            and self.error is None
            and self.metadata is not None
        )


class TicketProof(BaseModel):
    """票据上保存的证明摘要"""
    model_config = ConfigDict(frozen=True)

    proof_reference: str
    claim_amount: str
    claim_amount_formatted: str
    deposit_address: str
    swap_amount_in: str
    swap_amount_usd: str
    created_at: str

    @classmethod
    def from_result(cls, result: ProofResult, decimals: int) -> "TicketProof":
        metadata = result.metadata
        if metadata is None:
            raise ValueError("证明结果缺少 metadata")
        return cls(
            proof_reference=metadata.proof_reference,
            claim_amount=metadata.claim_amount,
            claim_amount_formatted=format_token_amount(metadata.claim_amount, decimals),
            deposit_address=metadata.deposit_address,
            swap_amount_in=metadata.swap_amount_in,
            swap_amount_usd=metadata.swap_amount_usd,
            created_at=metadata.created_at,
        )


# ============================================================
# 本地凭证
# ============================================================

class TicketReference(BaseModel):
    """
    本地保存的证明凭证

    只保存识别信息，不保存证明本身。
    """
    id: str = Field(description="TEE proofReference")
    launch_id: str
    launch_address: str = Field(description="发售 PDA")
    launch_name: str = ""
    token_symbol: str
    claim_amount: str
    deposit_address: str
    created_at: int = Field(description="毫秒时间戳")
    status: ReferenceStatus = ReferenceStatus.PENDING
    token_image_uri: str | None = None
