from typing import Any, Dict

from fastapi import APIRouter, Request

from ..runtime.bot import StakingBot

router = APIRouter()


def _bot(request: Request) -> StakingBot:
    return request.app.state.bot


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Run state plus the most recent health probe"""

    bot = _bot(request)
    report = bot.health.last_report if bot.health else None
    if report is None:
        status = "unknown"
    else:
        status = "healthy" if report.healthy and not report.low_balance else "degraded"

    return {
        "status": status,
        "state": bot.run_state.value,
        "report": report.to_dict(bot.token) if report else None,
    }


@router.get("/metrics")
async def metrics(request: Request) -> Dict[str, Any]:
    bot = _bot(request)
    return bot.get_metrics().to_dict(bot.token)


@router.get("/status")
async def status(request: Request) -> Dict[str, Any]:
    return _bot(request).status()
