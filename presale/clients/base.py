"""
预售系统 — 外部服务客户端基类

定义跨链兑换服务和 TEE 证明服务的客户端接口。
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx

from presale.common.exceptions import ServiceError, TransientServiceError
from presale.common.logging import get_logger
from presale.common.models import (
    LaunchAvailability,
    LaunchInfo,
    ProofRequest,
    ProofResult,
    QuoteRequest,
    SwapQuote,
    SwapStatusSnapshot,
)

logger = get_logger(__name__)


class SwapBridgeClient(ABC):
    """
    跨链兑换客户端抽象基类
    
    每次报价生成一个新的一次性充值地址，不支持撤销。
    """
    
    @property
    @abstractmethod
    def name(self) -> str:
        """服务名称"""
        pass
    
    @abstractmethod
    async def create_swap_quote(self, request: QuoteRequest) -> SwapQuote:
        """
        创建报价（生成充值地址）
        
        Args:
            request: 报价请求
        
        Returns:
            报价，包含一次性充值地址
        """
        pass
    
    @abstractmethod
    async def check_swap_status(self, deposit_address: str) -> SwapStatusSnapshot:
        """
        查询兑换状态
        
        Args:
            deposit_address: 充值地址
        
        Returns:
            状态快照
        
        Raises:
            TransientServiceError: 网络或服务暂时不可用
        """
        pass


class ProofServiceClient(ABC):
    """TEE 证明服务客户端抽象基类"""
    
    @abstractmethod
    async def generate_proof(self, request: ProofRequest) -> ProofResult:
        """
        请求生成证明
        
        Args:
            request: 证明请求
        
        Returns:
            证明结果（调用方需检查 verification.verified）
        """
        pass
    
    @abstractmethod
    async def check_availability(self, launch: LaunchInfo) -> LaunchAvailability:
        """查询发售剩余额度"""
        pass


class HttpServiceClient:
    """
    基于 httpx 的 JSON 服务客户端
    
    网络错误、超时、429 和 5xx 转为 TransientServiceError，
    其余 4xx 转为 error_class。
    """
    
    error_class: type[ServiceError] = ServiceError
    
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
    
    @property
    def is_connected(self) -> bool:
        return self._client is not None
    
    async def connect(self) -> None:
        """建立连接"""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json", **self._headers},
            transport=self._transport,
        )
        logger.info(f"{type(self).__name__} 已连接: {self.base_url}")
    
    async def disconnect(self) -> None:
        """断开连接"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info(f"{type(self).__name__} 已断开")
    
    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """发送请求，未连接时自动连接"""
        if self._client is None:
            await self.connect()
        assert self._client is not None
        
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientServiceError(
                f"{method} {path} 请求失败: {e}",
                details={"path": path},
            ) from e
        
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientServiceError(
                f"{method} {path} 服务暂时不可用: {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )
        
        if response.is_error:
            raise self.error_class(
                f"{method} {path} 失败: {response.status_code} - {response.text}",
                details={"path": path, "status_code": response.status_code},
            )
        
        return response
    
    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """发送请求并解析 JSON"""
        response = await self._send(method, path, params=params, json=json)
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(
                f"{method} {path} 返回非 JSON 内容",
                details={"path": path},
            ) from e
