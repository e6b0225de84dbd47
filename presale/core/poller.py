"""
预售系统 — 兑换状态轮询

每张票据一个 watcher（asyncio.Task），按票据序号登记。
"""

import asyncio
from abc import ABC, abstractmethod

from presale.clients.base import SwapBridgeClient
from presale.common.config import PollerConfig
from presale.common.enums import SwapStatus, TicketEventKind
from presale.common.exceptions import ServiceError
from presale.common.logging import get_logger
from presale.common.models import SwapStatusSnapshot
from presale.common.retry import calculate_delay

logger = get_logger(__name__)


# 终态兑换状态 -> 票据事件
TERMINAL_STATUS_EVENTS: dict[SwapStatus, TicketEventKind] = {
    SwapStatus.SUCCESS: TicketEventKind.SWAP_SUCCEEDED,
    SwapStatus.FAILED: TicketEventKind.SWAP_FAILED,
    SwapStatus.REFUNDED: TicketEventKind.SWAP_REFUNDED,
    SwapStatus.INCOMPLETE_DEPOSIT: TicketEventKind.DEPOSIT_INCOMPLETE,
}


def classify_status(snapshot: SwapStatusSnapshot) -> TicketEventKind | None:
    """终态返回对应事件，非终态返回 None"""
    return TERMINAL_STATUS_EVENTS.get(snapshot.status)


class StatusHandler(ABC):
    """watcher 的状态处理方（会话）"""
    
    @abstractmethod
    async def on_swap_status(self, index: int, snapshot: SwapStatusSnapshot) -> bool:
        """
        处理一次查询结果
        
        Returns:
            True 表示停止该 watcher
        """
        pass
    
    @abstractmethod
    async def on_watch_expired(self, index: int) -> None:
        """超过监控截止时间仍未到达终态"""
        pass


class StatusPoller:
    """
    兑换状态轮询器
    
    - 按 interval_seconds 查询
    - 网络错误指数退避，上限 max_interval_seconds，成功后复位
    - 超过 watch_timeout_seconds 通知处理方并停止
    """
    
    def __init__(
        self,
        bridge: SwapBridgeClient,
        config: PollerConfig | None = None,
    ):
        self.bridge = bridge
        self.config = config or PollerConfig()
        self._watchers: dict[int, asyncio.Task] = {}
    
    @property
    def active_indices(self) -> list[int]:
        return sorted(i for i, task in self._watchers.items() if not task.done())
    
    def is_watching(self, index: int) -> bool:
        task = self._watchers.get(index)
        return task is not None and not task.done()
    
    async def check_status(self, deposit_address: str) -> SwapStatusSnapshot:
        """单次查询（不受轮询节奏限制）"""
        return await self.bridge.check_swap_status(deposit_address)
    
    def start(self, index: int, deposit_address: str, handler: StatusHandler) -> bool:
        """
        启动 watcher
        
        Returns:
            False 表示该票据已有运行中的 watcher
        """
        if self.is_watching(index):
            return False
        
        self._watchers[index] = asyncio.create_task(
            self._watch(index, deposit_address, handler),
            name=f"ticket-watcher-{index}",
        )
        logger.debug(f"watcher 已启动: 票据 {index}", extra={"deposit_address": deposit_address})
        return True
    
    async def stop(self, index: int) -> None:
        """停止 watcher（在 watcher 自身内调用时只注销不取消）"""
        task = self._watchers.pop(index, None)
        if task is None or task.done() or task is asyncio.current_task():
            return
        
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"watcher 已停止: 票据 {index}")
    
    async def drain(self) -> None:
        """停止所有 watcher"""
        for index in list(self._watchers):
            await self.stop(index)
    
    def _backoff(self, failures: int) -> float:
        return calculate_delay(
            failures,
            self.config.interval_seconds,
            self.config.max_interval_seconds,
        )
    
    async def _watch(self, index: int, deposit_address: str, handler: StatusHandler) -> None:
        """
        轮询循环
        
        查询或处理异常都按失败退避后继续，watcher 只在终态、
        超过截止时间或被取消时退出。
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.watch_timeout_seconds
        delay = self.config.interval_seconds
        failures = 0
        
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.warning(
                        f"票据 {index} 超过监控截止时间",
                        extra={"deposit_address": deposit_address},
                    )
                    try:
                        await handler.on_watch_expired(index)
                    except Exception as e:
                        logger.error(f"票据 {index} 超时处理异常: {e}", exc_info=True)
                    return
                
                await asyncio.sleep(min(delay, remaining))
                
                try:
                    snapshot = await self.check_status(deposit_address)
                except ServiceError as e:
                    failures += 1
                    delay = self._backoff(failures)
                    logger.warning(
                        f"票据 {index} 状态查询失败，{delay:.1f}s 后重试: {e}",
                        extra={"deposit_address": deposit_address, "failures": failures},
                    )
                    continue
                except Exception as e:
                    failures += 1
                    delay = self._backoff(failures)
                    logger.error(
                        f"票据 {index} 状态查询异常，{delay:.1f}s 后重试: {e}",
                        exc_info=True,
                        extra={"deposit_address": deposit_address, "failures": failures},
                    )
                    continue
                
                try:
                    finished = await handler.on_swap_status(index, snapshot)
                except Exception as e:
                    failures += 1
                    delay = self._backoff(failures)
                    logger.error(
                        f"票据 {index} 状态处理异常，{delay:.1f}s 后重试: {e}",
                        exc_info=True,
                        extra={"deposit_address": deposit_address, "failures": failures},
                    )
                    continue
                
                if finished:
                    return
                failures = 0
                delay = self.config.interval_seconds
        finally:
            if self._watchers.get(index) is asyncio.current_task():
                del self._watchers[index]
