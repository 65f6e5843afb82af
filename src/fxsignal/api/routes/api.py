"""JSON endpoints for pair analyses, risk settings and the trade journal."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fxsignal.api.schemas import (
    CloseTradeRequest,
    RecordTradeRequest,
    error_response,
    read_body,
)
from fxsignal.config import RiskSettings, RiskSettingsUpdate
from fxsignal.exceptions import ConfigurationError, TradeNotFound, UnknownPairError
from fxsignal.models import TradeRecord
from fxsignal.signals.models import Analysis

log = structlog.get_logger(__name__)

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _analysis_to_dict(analysis: Analysis) -> dict[str, Any]:
    plan = analysis.risk_plan
    return {
        "signal": analysis.signal.value,
        "confidence": analysis.confidence,
        "recommendation": analysis.recommendation,
        "sufficientData": analysis.sufficient_data,
        "dataPoints": analysis.data_points,
        "changePct": analysis.change_pct,
        "rsi": analysis.rsi,
        "macd": {
            "macd": analysis.macd.macd,
            "signal": analysis.macd.signal,
            "histogram": analysis.macd.histogram,
        },
        "atr": analysis.atr,
        "smaShort": analysis.sma_short,
        "smaLong": analysis.sma_long,
        "bollinger": (
            {
                "upper": analysis.bollinger.upper,
                "middle": analysis.bollinger.middle,
                "lower": analysis.bollinger.lower,
            }
            if analysis.bollinger
            else None
        ),
        "entryPrice": analysis.entry_price,
        "stopLoss": analysis.stop_loss,
        "takeProfit": analysis.take_profit,
        "riskReward": analysis.risk_reward,
        "reasons": list(analysis.reasons),
        "riskPlan": (
            {
                "optimalLots": plan.optimal_lots,
                "maxLossAmount": plan.max_loss_amount,
                "requiredMargin": plan.required_margin,
                "stopDistance": plan.stop_distance,
            }
            if plan
            else None
        ),
    }


def _trade_to_dict(trade: TradeRecord) -> dict[str, Any]:
    return {
        "id": trade.id,
        "pairId": trade.pair_id,
        "pairName": trade.pair_name,
        "direction": trade.direction.value,
        "entryPrice": trade.entry_price,
        "stopLoss": trade.stop_loss,
        "takeProfit": trade.take_profit,
        "lots": trade.lots,
        "openedAt": trade.opened_at,
        "status": trade.status.value,
        "profit": trade.profit,
        "exitPrice": trade.exit_price,
        "closedAt": trade.closed_at,
    }


def _risk_to_dict(settings: RiskSettings) -> dict[str, Any]:
    return {
        "capital": settings.capital,
        "riskPercent": settings.risk_percent,
        "leverage": settings.leverage,
        "lotSize": settings.lot_size,
    }


@router.get("/pairs")
async def get_pairs(request: Request) -> JSONResponse:
    """Current rate and analysis per pair, strongest buy signal first."""
    orchestrator = request.app.state.orchestrator
    snapshot = orchestrator.last_snapshot

    result = []
    for pair in orchestrator.ranked_pairs():
        analysis = orchestrator.get_analysis(pair.id)
        result.append({
            "id": pair.id,
            "name": pair.name,
            "symbol": pair.symbol,
            "rate": orchestrator.get_rate(pair.id),
            "analysis": _analysis_to_dict(analysis) if analysis else None,
        })

    return JSONResponse(content=_decimal_to_str({
        "source": snapshot.source if snapshot else None,
        "live": snapshot.is_live if snapshot else False,
        "pairs": result,
    }))


@router.get("/risk-settings")
async def get_risk_settings(request: Request) -> JSONResponse:
    risk_profile = request.app.state.context.risk_profile
    return JSONResponse(content=_decimal_to_str(_risk_to_dict(risk_profile.snapshot())))


@router.put("/risk-settings")
async def update_risk_settings(request: Request) -> JSONResponse:
    """Apply a user risk change and resize every current recommendation."""
    parsed = await read_body(request, RiskSettingsUpdate)
    if isinstance(parsed, JSONResponse):
        return parsed

    context = request.app.state.context
    try:
        updated = await context.risk_profile.update(parsed)
    except ConfigurationError as e:
        return error_response(str(e), 400)

    request.app.state.orchestrator.apply_risk_settings(updated)
    return JSONResponse(content=_decimal_to_str(_risk_to_dict(updated)))


@router.get("/trades")
async def get_trades(request: Request) -> JSONResponse:
    journal = request.app.state.context.journal
    trades = await journal.list_trades()
    stats = await journal.get_stats()
    return JSONResponse(content=_decimal_to_str({
        "trades": [_trade_to_dict(t) for t in trades],
        "stats": {
            "totalTrades": stats.total_trades,
            "openTrades": stats.open_trades,
            "closedTrades": stats.closed_trades,
            "winRate": stats.win_rate,
            "totalProfit": stats.total_profit,
        },
    }))


@router.post("/trades")
async def record_trade(request: Request) -> JSONResponse:
    """Journal a trade at the pair's current recommendation."""
    parsed = await read_body(request, RecordTradeRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    context = request.app.state.context
    try:
        pair = context.require_pair(parsed.pair_id)
    except UnknownPairError as e:
        return error_response(str(e), 404)

    analysis = request.app.state.orchestrator.get_analysis(pair.id)
    if analysis is None:
        return error_response(f"No analysis available for {pair.id} yet", 409)

    try:
        trade = await context.journal.record_trade(pair, analysis, parsed.direction)
    except ValueError as e:
        return error_response(str(e), 409)

    return JSONResponse(content=_decimal_to_str(_trade_to_dict(trade)), status_code=201)


@router.post("/trades/{trade_id}/close")
async def close_trade(request: Request, trade_id: str) -> JSONResponse:
    parsed = await read_body(request, CloseTradeRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    journal = request.app.state.context.journal
    try:
        trade = await journal.close_trade(trade_id, parsed.outcome, parsed.exit_price)
    except TradeNotFound as e:
        return error_response(str(e), 404)

    return JSONResponse(content=_decimal_to_str(_trade_to_dict(trade)))
