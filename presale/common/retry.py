"""
预售系统 — 重试与退避

外部服务请求的指数退避重试；轮询器的退避间隔也由此计算。
"""

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from .exceptions import TransientServiceError
from .logging import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def retry_with_backoff(
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    exponential: bool = True,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (TransientServiceError,),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    异步重试装饰器
    
    只重试 exceptions 中列出的异常，其余异常直接抛出。
    
    Args:
        max_retries: 最大重试次数
        base_delay: 基础延迟（秒）
        max_delay: 最大延迟（秒）
        exponential: 是否使用指数退避
        jitter: 是否添加随机抖动
        exceptions: 需要重试的异常类型
    
    Returns:
        装饰器函数
    """
    
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.warning(
                            f"重试耗尽: {func.__name__}, 尝试 {attempt + 1}/{max_retries + 1}",
                            extra={"error": str(e)},
                        )
                        raise
                    
                    delay = calculate_delay(
                        attempt, base_delay, max_delay, exponential, jitter
                    )
                    logger.info(
                        f"重试: {func.__name__}, 尝试 {attempt + 1}/{max_retries + 1}, "
                        f"延迟 {delay:.2f}s",
                        extra={"error": str(e)},
                    )
                    await asyncio.sleep(delay)
            
            raise AssertionError("unreachable")
        
        return wrapper
    
    return decorator


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential: bool = True,
    jitter: bool = False,
) -> float:
    """计算第 attempt 次（从 0 开始）重试的延迟"""
    if exponential:
        delay = base_delay * (2 ** attempt)
    else:
        delay = base_delay
    
    delay = min(delay, max_delay)
    
    if jitter:
        delay = delay * (0.5 + random.random())
    
    return delay
