#!/usr/bin/env python3
"""健康检查脚本。

检查缓存后端与各新闻源的可用性。
可作为运维脚本或监控探针使用。

使用方式：
    # 完整健康检查
    python scripts/health_check.py

    # 只检查特定组件
    python scripts/health_check.py --component cache
    python scripts/health_check.py --component sources

    # JSON 输出
    python scripts/health_check.py --json

    # 退出码检查（用于 CI/CD）
    python scripts/health_check.py --strict
"""

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


async def check_cache() -> dict:
    """检查缓存后端连接。"""
    from tradewatch.core.config import settings
    from tradewatch.core.infrastructure.cache import CacheService
    from tradewatch.core.infrastructure.health import HealthStatus

    cache = CacheService()
    try:
        result = await cache.health_check()
        return {
            "status": "healthy" if result.status == HealthStatus.OK else "unhealthy",
            "url": settings.redis_url,
            **result.to_dict(),
        }
    finally:
        await cache.close()


async def check_sources() -> dict:
    """对每个启用的来源抓取一条最新条目（绕过缓存）。"""
    from tradewatch.modules.news.infrastructure.adapters import build_news_sources

    descriptors = build_news_sources()
    enabled = [d for d in descriptors if d.enabled]
    try:
        results = await asyncio.gather(*(d.adapter.get_latest(1) for d in enabled))
    finally:
        await asyncio.gather(*(d.adapter.aclose() for d in descriptors))

    sources = {
        d.source_id: {"items": len(items), "weight": d.weight}
        for d, items in zip(enabled, results, strict=True)
    }
    empty = [source_id for source_id, info in sources.items() if info["items"] == 0]

    status = "healthy"
    if empty:
        status = "warning" if len(empty) < len(enabled) else "unhealthy"
    if not enabled:
        status = "unhealthy"

    return {
        "status": status,
        "sources": sources,
        "empty_sources": empty,
        "disabled_sources": [d.source_id for d in descriptors if not d.enabled],
    }


CHECKERS = {
    "cache": check_cache,
    "sources": check_sources,
}


async def run_full_check() -> dict:
    """运行完整健康检查。"""
    results = {
        "timestamp": datetime.now(UTC).isoformat(),
        "overall_status": "healthy",
        "components": {},
    }

    # 并行执行所有检查
    outcomes = await asyncio.gather(
        *(checker() for checker in CHECKERS.values()),
        return_exceptions=True,
    )
    for name, outcome in zip(CHECKERS, outcomes, strict=True):
        if isinstance(outcome, Exception):
            outcome = {"status": "error", "error": str(outcome)}
        results["components"][name] = outcome

    # 确定整体状态
    statuses = [c.get("status", "unknown") for c in results["components"].values()]

    if any(s in ("unhealthy", "error") for s in statuses):
        results["overall_status"] = "unhealthy"
    elif any(s == "warning" for s in statuses):
        results["overall_status"] = "degraded"

    return results


async def run_component_check(component: str) -> dict:
    """运行单个组件检查。"""
    try:
        result = await CHECKERS[component]()
    except Exception as e:
        result = {"status": "error", "error": str(e)}
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "component": component,
        "result": result,
    }


_MARKS = {"healthy": "[ OK ]", "warning": "[WARN]", "degraded": "[WARN]"}


def _render_fields(info: dict, indent: str) -> list[str]:
    return [f"{indent}{key}: {value}" for key, value in info.items() if key != "status"]


def render_report(result: dict) -> str:
    """渲染人类可读的报告文本。"""
    lines = [f"tradewatch health @ {result.get('timestamp', 'N/A')}"]

    if "overall_status" in result:
        overall = result["overall_status"]
        lines.append(f"{_MARKS.get(overall, '[FAIL]')} overall: {overall}")
        for component, info in result.get("components", {}).items():
            status = info.get("status", "unknown")
            lines.append(f"{_MARKS.get(status, '[FAIL]')} {component}: {status}")
            if status != "healthy":
                lines.extend(_render_fields(info, "       "))
    else:
        info = result.get("result", {})
        status = info.get("status", "unknown")
        lines.append(f"{_MARKS.get(status, '[FAIL]')} {result.get('component')}: {status}")
        lines.extend(_render_fields(info, "       "))

    return "\n".join(lines)


def _exit_status(result: dict) -> str:
    if "overall_status" in result:
        return result["overall_status"]
    return result.get("result", {}).get("status", "unknown")


def main() -> None:
    parser = argparse.ArgumentParser(description="tradewatch 健康检查")
    parser.add_argument("--component", "-c", choices=sorted(CHECKERS), help="只检查特定组件")
    parser.add_argument("--json", action="store_true", help="输出 JSON")
    parser.add_argument("--strict", action="store_true", help="非 healthy 时返回退出码 1")
    args = parser.parse_args()

    from tradewatch.core.infrastructure.logging import setup_logging

    setup_logging()

    if args.component:
        result = asyncio.run(run_component_check(args.component))
    else:
        result = asyncio.run(run_full_check())

    print(json.dumps(result, indent=2, default=str) if args.json else render_report(result))

    sys.exit(1 if args.strict and _exit_status(result) != "healthy" else 0)


if __name__ == "__main__":
    main()
