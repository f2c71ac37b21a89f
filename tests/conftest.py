"""
pytest 配置和共享 fixtures。

测试分层：
- unit/: 单元测试（不依赖外部服务，HTTP 使用 httpx.MockTransport，Redis 使用内存替身）

使用方法：
    # 运行所有测试
    uv run pytest

    # 只运行单元测试
    uv run pytest tests/unit/

    # 运行带覆盖率
    uv run pytest --cov=tradewatch --cov-report=html
"""

import fnmatch
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from tradewatch.core.infrastructure.cache import CacheService
from tradewatch.core.infrastructure.redis.client import RedisClient
from tradewatch.modules.news.domain.entities import NormalizedItem

# ============================================
# 异步后端
# ============================================


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ============================================
# Redis 内存替身
# ============================================


class FakePipeline:
    """缓冲命令并在 execute() 时一次性执行（一次往返）。"""

    def __init__(self, redis: "FakeRedis", transaction: bool):
        self._redis = redis
        self.transaction = transaction
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def get(self, key: str) -> "FakePipeline":
        self._commands.append(("get", (key,), {}))
        return self

    def set(self, key: str, value: str, ex: int | None = None) -> "FakePipeline":
        self._commands.append(("set", (key, value), {"ex": ex}))
        return self

    def delete(self, *keys: str) -> "FakePipeline":
        self._commands.append(("delete", keys, {}))
        return self

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._commands = []

    async def execute(self, raise_on_error: bool = True) -> list[Any]:
        self._redis.check_available()
        self._redis.round_trips += 1
        results: list[Any] = []
        for name, args, kwargs in self._commands:
            try:
                results.append(getattr(self._redis, f"_{name}")(*args, **kwargs))
            except ResponseError as exc:
                if raise_on_error:
                    raise
                results.append(exc)
        self._commands = []
        return results


class FakeRedis:
    """redis.asyncio.Redis 的最小内存实现（decode_responses=True 语义）。"""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.round_trips = 0
        self.failing_keys: set[str] = set()
        self.available = True
        self.closed = False

    def check_available(self) -> None:
        if not self.available:
            raise RedisConnectionError("Connection refused")

    def _check_key(self, key: str) -> None:
        if key in self.failing_keys:
            raise ResponseError(f"simulated failure for {key}")

    # 同步实现（pipeline 与直接调用共用）

    def _get(self, key: str) -> str | None:
        self._check_key(key)
        return self.data.get(key)

    def _set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check_key(key)
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = int(ex)
        return True

    def _delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            self._check_key(key)
            if self.data.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    # 异步接口

    async def mget(self, keys: Any) -> list[str | None]:
        self.check_available()
        self.round_trips += 1
        return [self._get(key) for key in keys]

    async def delete(self, *keys: str) -> int:
        self.check_available()
        self.round_trips += 1
        return self._delete(*keys)

    async def scan_iter(self, match: str = "*", count: int | None = None) -> AsyncIterator[str]:
        self.check_available()
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        self.check_available()
        return True

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self.check_available()
        return {"redis_version": "7.2.4"}

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self, transaction)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_service(fake_redis: FakeRedis) -> CacheService:
    """连接内存 Redis 的缓存服务。"""
    return CacheService(
        default_ttl=600,
        ttl_overrides={},
        compression_threshold=1024,
        redis_client=RedisClient(client=fake_redis),
    )


# ============================================
# 数据 Fixtures
# ============================================


def make_item(
    item_id: str,
    *,
    source_id: str = "test",
    published_at: datetime | None = None,
    title: str | None = None,
    categories: tuple[str, ...] = (),
    **kwargs: Any,
) -> NormalizedItem:
    """构造测试用 NormalizedItem。"""
    return NormalizedItem(
        id=f"{source_id}:{item_id}",
        source_id=source_id,
        source=source_id.title(),
        title=title or f"Item {item_id}",
        published_at=published_at,
        categories=categories,
        **kwargs,
    )


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
