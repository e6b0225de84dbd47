"""
预售系统 — 证明请求

兑换成功后向 TEE 请求证明。每张票据领取固定额度（tokens_per_proof），
不按实际到账金额比例计算。
"""

import asyncio
from dataclasses import dataclass

from presale.clients.base import ProofServiceClient
from presale.common.exceptions import ReferenceStoreError, ServiceError
from presale.common.logging import get_logger
from presale.common.models import LaunchInfo, ProofRequest, ProofResult, TicketReference
from presale.common.utils import to_utc_ms, utc_now
from presale.storage.references import TicketReferenceStore

from .ticket import Ticket

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProofOutcome:
    """证明请求结果"""
    accepted: bool
    result: ProofResult | None = None
    error: str | None = None


class ProofRequester:
    """
    证明请求
    
    只有 verification.verified 显式为 True 才接受。
    接受后写入本地凭证（失败只记录日志）。
    """
    
    def __init__(
        self,
        tee: ProofServiceClient,
        launch: LaunchInfo,
        user_pubkey: str,
        store: TicketReferenceStore | None = None,
    ):
        self.tee = tee
        self.launch = launch
        self.user_pubkey = user_pubkey
        self.store = store
    
    def build_request(self, ticket: Ticket) -> ProofRequest:
        """票据对应的证明请求，只取决于票据和发售信息"""
        return ProofRequest(
            deposit_address=ticket.deposit_address,
            creator_address=self.launch.creator_wallet,
            launch_id=self.launch.launch_id,
            launch_pda=self.launch.launch_pda,
            token_mint=self.launch.token_mint,
            token_symbol=self.launch.token_symbol,
            price_per_token=self.launch.price_per_token,
            amount_to_sell=self.launch.amount_to_sell,
            decimals=self.launch.decimals,
            tokens_per_proof=self.launch.tokens_per_proof,
            user_pubkey=self.user_pubkey,
        )
    
    async def request_proof(self, ticket: Ticket) -> ProofOutcome:
        """
        请求证明
        
        服务错误和校验失败都返回 accepted=False，不抛出异常。
        """
        request = self.build_request(ticket)
        
        try:
            result = await self.tee.generate_proof(request)
        except ServiceError as e:
            logger.warning(
                f"票据 {ticket.index} 证明请求失败: {e.message}",
                extra={"ticket_index": ticket.index, "stage": "proof"},
            )
            return ProofOutcome(accepted=False, error=e.message)
        
        if not result.is_verified:
            error = result.error or result.verification.error or "证明未通过校验"
            logger.warning(
                f"票据 {ticket.index} 证明未通过校验: {error}",
                extra={"ticket_index": ticket.index, "stage": "proof"},
            )
            return ProofOutcome(accepted=False, result=result, error=error)
        
        await self._save_reference(ticket, result)
        
        logger.info(
            f"票据 {ticket.index} 证明已生成",
            extra={
                "ticket_index": ticket.index,
                "proof_reference": result.metadata.proof_reference if result.metadata else None,
            },
        )
        return ProofOutcome(accepted=True, result=result)
    
    async def _save_reference(self, ticket: Ticket, result: ProofResult) -> None:
        """保存本地凭证（文件写入放到线程中执行）"""
        if self.store is None or result.metadata is None:
            return
        
        reference = TicketReference(
            id=result.metadata.proof_reference,
            launch_id=self.launch.launch_id,
            launch_address=self.launch.launch_pda,
            launch_name=self.launch.token_name,
            token_symbol=self.launch.token_symbol,
            claim_amount=result.metadata.claim_amount,
            deposit_address=ticket.deposit_address,
            created_at=to_utc_ms(utc_now()),
            token_image_uri=self.launch.token_image_uri,
        )
        try:
            await asyncio.to_thread(self.store.save, reference)
        except ReferenceStoreError as e:
            logger.error(
                f"票据 {ticket.index} 凭证保存失败: {e.message}",
                extra={"ticket_index": ticket.index, "stage": "reference", **e.details},
            )
