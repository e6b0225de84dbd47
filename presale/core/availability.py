"""
预售系统 — 供应检查

请求前用最新查询的剩余额度检查购买数量。尽力而为，不加全局锁。
"""

from dataclasses import dataclass

from presale.common.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthorizationResult:
    """供应检查结果"""
    ok: bool
    reason: str | None = None
    requested_qty: int = 0
    remaining_supply: int = 0


class AvailabilityGuard:
    """
    供应检查
    
    拒绝条件：
    - 数量 <= 0
    - 已售罄
    - 数量超过剩余票据数
    """
    
    @property
    def name(self) -> str:
        return "availability"
    
    def authorize(
        self,
        requested_qty: int,
        remaining_supply: int,
        sold_out: bool = False,
    ) -> AuthorizationResult:
        """检查请求数量"""
        if requested_qty <= 0:
            return self._reject(requested_qty, remaining_supply, "购买数量必须大于 0")
        
        if sold_out or remaining_supply <= 0:
            return self._reject(requested_qty, remaining_supply, "已售罄")
        
        if requested_qty > remaining_supply:
            return self._reject(
                requested_qty,
                remaining_supply,
                f"仅剩 {remaining_supply} 张票据，请求 {requested_qty} 张",
            )
        
        return AuthorizationResult(
            ok=True,
            requested_qty=requested_qty,
            remaining_supply=remaining_supply,
        )
    
    def _reject(self, requested_qty: int, remaining_supply: int, reason: str) -> AuthorizationResult:
        logger.warning(
            f"供应检查拒绝: {reason}",
            extra={"requested_qty": requested_qty, "remaining_supply": remaining_supply},
        )
        return AuthorizationResult(
            ok=False,
            reason=reason,
            requested_qty=requested_qty,
            remaining_supply=remaining_supply,
        )
