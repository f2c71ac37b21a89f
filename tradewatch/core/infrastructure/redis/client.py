"""Redis 客户端封装。

提供统一的 Redis 访问接口，支持：
- 连接池管理（延迟初始化）
- 健康检查
- 缓存层所需的常用操作与 pipeline
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import redis.asyncio as aioredis
from loguru import logger

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline

from tradewatch.core.config import settings
from tradewatch.core.infrastructure.health import CacheHealthResult, HealthStatus


class RedisClient:
    """Redis 客户端封装类。"""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        password: str | None = None,
        db: int | None = None,
        *,
        client: Redis | None = None,
    ):
        """初始化 Redis 客户端。

        Args:
            host: Redis 主机，默认使用配置中的 REDIS_HOST
            port: Redis 端口，默认使用配置中的 REDIS_PORT
            password: Redis 密码，默认使用配置中的 REDIS_PASSWORD
            db: Redis 数据库编号，默认使用配置中的 REDIS_DB
            client: 预先构造的 redis.asyncio 客户端（测试时注入）
        """
        self._host = host or settings.REDIS_HOST
        self._port = port or settings.REDIS_PORT
        self._password = password if password is not None else settings.REDIS_PASSWORD
        self._db = db if db is not None else settings.REDIS_DB
        self._client: Redis | None = client

    @property
    def client(self) -> Redis:
        """获取 Redis 客户端实例（延迟初始化）。"""
        if self._client is None:
            self._client = aioredis.Redis(
                host=self._host,
                port=self._port,
                password=self._password,
                db=self._db,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SEC,
                socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SEC,
                retry_on_timeout=True,
            )
        return self._client

    async def close(self) -> None:
        """关闭 Redis 连接。"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        """检查 Redis 连接是否正常。

        Returns:
            连接正常返回 True，否则返回 False
        """
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def health_check(self) -> CacheHealthResult:
        """执行 Redis 健康检查。

        Returns:
            CacheHealthResult: 健康检查结果
        """
        try:
            is_connected = await self.ping()
            info = await self.client.info("server") if is_connected else {}
            return CacheHealthResult(
                status=HealthStatus.OK if is_connected else HealthStatus.ERROR,
                connected=is_connected,
                version=info.get("redis_version", "unknown"),
            )
        except Exception as e:
            return CacheHealthResult(
                status=HealthStatus.ERROR,
                connected=False,
                error=str(e),
            )

    # ============ 缓存操作 ============

    async def mget(self, *keys: str) -> list[str | None]:
        """一次往返获取多个键。"""
        return await self.client.mget(keys)

    async def delete(self, *keys: str) -> int:
        """删除一个或多个键。"""
        if not keys:
            return 0
        return await self.client.delete(*keys)

    async def scan_keys(self, pattern: str, count: int = 500) -> AsyncIterator[str]:
        """增量遍历匹配的键（SCAN，不阻塞服务端）。"""
        async for key in self.client.scan_iter(match=pattern, count=count):
            yield key

    def pipeline(self, transaction: bool = False) -> Pipeline:
        """创建 pipeline，用于单次往返批量执行命令。"""
        return self.client.pipeline(transaction=transaction)

    async def execute_pipeline(
        self,
        pipe: Pipeline,
        raise_on_error: bool = True,
    ) -> list[Any]:
        """执行 pipeline 并返回每条命令的结果。"""
        async with pipe:
            return await pipe.execute(raise_on_error=raise_on_error)
