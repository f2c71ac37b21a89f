"""Logging setup.

两条通道：
- loguru: 运行日志（请求重试、缓存降级、解析跳过等）
- structlog: 业务事件（传输失败、来源失败、聚合完成），便于下游采集
"""

import logging
import sys
from typing import Any

import structlog
from loguru import logger

from tradewatch.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(level: str | None = None) -> None:
    """Configure loguru and structlog for the current environment."""
    level = (level or settings.LOG_LEVEL).upper()
    _configure_structlog(level)
    _configure_loguru(level)
    logger.info(f"Logging configured: level={level}, environment={settings.ENVIRONMENT}")


def _configure_structlog(level: str) -> None:
    # 本地开发输出彩色控制台，其余环境输出 JSON 行
    renderer: Any = (
        structlog.dev.ConsoleRenderer(colors=True)
        if settings.ENVIRONMENT == "local"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _configure_loguru(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if settings.ENVIRONMENT != "local":
        logger.add(
            f"logs/{settings.PROJECT_NAME}_{{time:YYYY-MM-DD}}.log",
            level="INFO",
            format=FILE_FORMAT,
            rotation="00:00",
            retention="30 days",
        )


def _level_number(level: str) -> int:
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


class BusinessEvents:
    """结构化业务事件。

    Usage:
        from tradewatch.core.infrastructure.logging import BusinessEvents

        BusinessEvents.source_fetch_failed(source_id="wto", operation="get_latest", error="HTTP 503")
    """

    _log = structlog.get_logger("tradewatch.events")

    @classmethod
    def _emit(cls, level: str, event: str, event_type: str, **fields: Any) -> None:
        getattr(cls._log, level)(event, event_type=event_type, **fields)

    @classmethod
    def request_retried(
        cls,
        base_url: str,
        path: str,
        error_type: str,
        attempt: int,
        delay_sec: float,
        **extra: Any,
    ) -> None:
        """出站请求失败后即将重试。"""
        cls._emit(
            "info",
            "request_retried",
            "transport",
            base_url=base_url,
            path=path,
            error_type=error_type,
            attempt=attempt,
            delay_sec=round(delay_sec, 3),
            **extra,
        )

    @classmethod
    def request_failed(
        cls,
        base_url: str,
        path: str,
        error_type: str,
        status_code: int | None,
        attempts: int,
        **extra: Any,
    ) -> None:
        """出站请求最终失败（重试耗尽或不可重试）。"""
        cls._emit(
            "warning",
            "request_failed",
            "transport_error",
            base_url=base_url,
            path=path,
            error_type=error_type,
            status_code=status_code,
            attempts=attempts,
            **extra,
        )

    @classmethod
    def source_fetch_failed(cls, source_id: str, operation: str, error: str, **extra: Any) -> None:
        """单个来源失败，按零条结果处理。"""
        cls._emit(
            "warning",
            "source_fetch_failed",
            "source_error",
            source_id=source_id,
            operation=operation,
            error=error,
            **extra,
        )

    @classmethod
    def aggregate_completed(
        cls,
        operation: str,
        source_count: int,
        failed_count: int,
        item_count: int,
        latency_ms: int,
        **extra: Any,
    ) -> None:
        cls._emit(
            "info",
            "aggregate_completed",
            "aggregate",
            operation=operation,
            source_count=source_count,
            failed_count=failed_count,
            item_count=item_count,
            latency_ms=latency_ms,
            **extra,
        )

    @classmethod
    def cache_error(cls, entity_type: str, operation: str, error: str, **extra: Any) -> None:
        """缓存操作失败，已降级为 miss。"""
        cls._emit(
            "warning",
            "cache_error",
            "cache",
            entity_type=entity_type,
            operation=operation,
            error=error,
            **extra,
        )

    @classmethod
    def feature_degraded(cls, feature: str, reason: str, **extra: Any) -> None:
        cls._emit("warning", "feature_degraded", "degradation", feature=feature, reason=reason, **extra)
