"""Request/response transform pipeline primitives.

请求变换在发送前按注册顺序执行，响应变换在接收后按注册顺序执行。
变换可以返回新的值，也可以抛出异常以拒绝本次请求。
"""

from __future__ import annotations

import hashlib
import hmac
import inspect
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import urlencode

import httpx


@dataclass(frozen=True)
class OutboundRequest:
    """A request as it flows through the transform pipeline."""

    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    def with_headers(self, headers: Mapping[str, str]) -> OutboundRequest:
        """返回合并了额外请求头的新请求。"""
        return replace(self, headers={**self.headers, **headers})


RequestTransform = Callable[
    [OutboundRequest], OutboundRequest | Awaitable[OutboundRequest]
]
ResponseTransform = Callable[
    [httpx.Response], httpx.Response | Awaitable[httpx.Response]
]


async def run_pipeline(value: Any, transforms: list[Callable[[Any], Any]]) -> Any:
    """依次执行变换（同步或异步均可）。"""
    for transform in transforms:
        result = transform(value)
        if inspect.isawaitable(result):
            result = await result
        value = result
    return value


def header_injector(headers: Mapping[str, str]) -> RequestTransform:
    """Create a transform that adds fixed headers to every request."""
    fixed = dict(headers)

    def transform(request: OutboundRequest) -> OutboundRequest:
        return request.with_headers(fixed)

    return transform


def canonical_request(request: OutboundRequest, timestamp: str) -> str:
    """Canonical string covered by the request signature."""
    query = urlencode(sorted((str(k), str(v)) for k, v in request.params.items()))
    if request.body is None:
        body = ""
    else:
        body = json.dumps(request.body, sort_keys=True, separators=(",", ":"))
    body_digest = hashlib.sha256(body.encode("utf-8")).hexdigest()
    return "\n".join([request.method.upper(), request.path, query, body_digest, timestamp])


def hmac_signer(
    secret: str,
    *,
    signature_header: str = "X-Signature",
    timestamp_header: str = "X-Timestamp",
    clock: Callable[[], float] = time.time,
) -> RequestTransform:
    """Create a transform that signs requests with HMAC-SHA256."""
    key = secret.encode("utf-8")

    def transform(request: OutboundRequest) -> OutboundRequest:
        timestamp = str(int(clock()))
        signature = hmac.new(
            key,
            canonical_request(request, timestamp).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return request.with_headers(
            {signature_header: signature, timestamp_header: timestamp}
        )

    return transform
