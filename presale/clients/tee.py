"""
预售系统 — TEE 证明服务客户端

证明请求和响应全程加密，发售额度查询为明文。
"""

from urllib.parse import quote

import httpx
from cryptography.exceptions import InvalidTag
from pydantic import ValidationError

from presale.common.config import TEEConfig
from presale.common.exceptions import ProofServiceError
from presale.common.logging import get_logger
from presale.common.models import (
    LaunchAvailability,
    LaunchInfo,
    LaunchStats,
    ProofRequest,
    ProofResult,
)
from presale.common.retry import retry_with_backoff

from .base import HttpServiceClient, ProofServiceClient
from .envelope import ProofEnvelope

logger = get_logger(__name__)


class TEEProofClient(HttpServiceClient, ProofServiceClient):
    """TEE 证明服务客户端"""
    
    error_class = ProofServiceError
    
    def __init__(
        self,
        config: TEEConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or TEEConfig()
        super().__init__(
            base_url=self.config.endpoint,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )
    
    @retry_with_backoff(max_retries=2, base_delay=0.5)
    async def get_enclave_pubkey(self) -> bytes:
        """获取 TEE 公钥（每次请求都重新获取）"""
        data = await self._request("GET", "/pubkey")
        try:
            return bytes.fromhex(data["pubkey"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProofServiceError(f"TEE 公钥响应无效: {e}") from e
    
    async def generate_proof(self, request: ProofRequest) -> ProofResult:
        """
        请求生成证明
        
        TEE 从链上确认兑换后返回按票据固定额度的证明。
        """
        enclave_pubkey = await self.get_enclave_pubkey()
        try:
            envelope = ProofEnvelope(enclave_pubkey)
        except ValueError as e:
            raise ProofServiceError(str(e)) from e
        
        body = envelope.seal_request(request.to_payload())
        
        logger.info(
            f"请求生成证明: {request.deposit_address}",
            extra={"launch_id": request.launch_id},
        )
        data = await self._request("POST", "/generate-proof", json=body)
        
        try:
            decrypted = envelope.open_response(data)
        except (InvalidTag, KeyError, TypeError, ValueError) as e:
            raise ProofServiceError(
                f"TEE 响应解密失败: {e!r}",
                details={"deposit_address": request.deposit_address, "stage": "proof"},
            ) from e
        
        try:
            return ProofResult.model_validate(decrypted)
        except ValidationError as e:
            raise ProofServiceError(
                f"TEE 证明结果格式无效: {e}",
                details={"deposit_address": request.deposit_address, "stage": "proof"},
            ) from e
    
    @retry_with_backoff(max_retries=2, base_delay=0.5)
    async def check_availability(self, launch: LaunchInfo) -> LaunchAvailability:
        """查询发售剩余额度"""
        data = await self._request(
            "GET",
            f"/launches/{quote(launch.launch_id, safe='')}/availability",
            params={
                "amount_to_sell": launch.amount_to_sell,
                "price_per_token": launch.price_per_token,
            },
        )
        try:
            return LaunchAvailability.model_validate(data)
        except ValidationError as e:
            raise ProofServiceError(f"额度响应无效: {e}") from e
    
    async def get_launch_stats(self, launch_id: str) -> LaunchStats:
        """查询发售统计"""
        data = await self._request("GET", f"/launches/{quote(launch_id, safe='')}/stats")
        try:
            return LaunchStats.model_validate(data)
        except ValidationError as e:
            raise ProofServiceError(f"统计响应无效: {e}") from e
