"""进程内令牌桶限流器。"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from loguru import logger


class TokenBucket:
    """异步令牌桶。

    令牌按 rate 个/秒连续补充，容量为 capacity。acquire() 在令牌不足时挂起，
    直到补足为止；等待方按到达顺序依次获得令牌。
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def available_tokens(self) -> float:
        """当前可用令牌数（只读快照）。"""
        elapsed = max(0.0, self._clock() - self._updated_at)
        return min(self.capacity, self._tokens + elapsed * self.rate)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated_at = now

    async def acquire(self, tokens: float = 1.0) -> float:
        """获取令牌，返回本次等待的秒数。"""
        if tokens > self.capacity:
            raise ValueError("cannot acquire more tokens than bucket capacity")

        waited = 0.0
        async with self._lock:
            self._refill()
            if self._tokens < tokens:
                waited = (tokens - self._tokens) / self.rate
                await self._sleep(waited)
                self._refill()
                # 等待时长已覆盖缺口，浮点误差不再触发二次等待
                self._tokens = max(self._tokens, tokens)
            self._tokens -= tokens

        if waited:
            logger.debug(f"Rate limiter delayed request by {waited:.3f}s")
        return waited
