"""Subscription, alert and service endpoints used by the push client."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fxsignal.api.schemas import (
    SetAlertRequest,
    SubscribeRequest,
    UnsubscribeRequest,
    error_response,
    read_body,
)
from fxsignal.exceptions import SubscriptionNotFound, UnknownPairError
from fxsignal.notify.payloads import TestPayload

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/vapid-public-key")
async def get_vapid_public_key(request: Request) -> JSONResponse:
    settings = request.app.state.context.settings
    return JSONResponse(content={"publicKey": settings.push.vapid_public_key})


@router.post("/subscribe")
async def subscribe(request: Request) -> JSONResponse:
    """Register a push endpoint. Re-subscribing the same endpoint is idempotent."""
    parsed = await read_body(request, SubscribeRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    registry = request.app.state.context.registry
    subscription, created = await registry.subscribe(
        parsed.endpoint, parsed.keys.model_dump(), parsed.expiration_time
    )
    return JSONResponse(
        content={
            "success": True,
            "message": "Subscribed" if created else "Already subscribed",
            "userId": subscription.subscriber_id,
            "created": created,
        },
        status_code=201,
    )


@router.post("/unsubscribe")
async def unsubscribe(request: Request) -> JSONResponse:
    parsed = await read_body(request, UnsubscribeRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    registry = request.app.state.context.registry
    removed = await registry.unsubscribe(parsed.endpoint)
    return JSONResponse(
        content={"success": True, "message": "Unsubscribed", "removed": int(removed)}
    )


@router.post("/set-alert")
async def set_alert(request: Request) -> JSONResponse:
    """Create a one-shot price alert for a registered subscriber."""
    parsed = await read_body(request, SetAlertRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    context = request.app.state.context
    try:
        pair = context.require_pair(parsed.pair_id)
        alert = await context.registry.add_alert(
            parsed.subscriber_id, pair.id, parsed.target_price, parsed.direction
        )
    except (UnknownPairError, SubscriptionNotFound) as e:
        return error_response(str(e), 404)

    return JSONResponse(
        content={"success": True, "message": "Alert set", "alertId": alert.id}
    )


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    orchestrator = request.app.state.orchestrator
    return JSONResponse(content=await orchestrator.get_status())


@router.post("/send-test-notification")
async def send_test_notification(request: Request) -> JSONResponse:
    context = request.app.state.context
    payload = TestPayload(icon=context.settings.push.icon)
    try:
        report = await context.dispatcher.broadcast(payload)
    except Exception as e:
        log.error("test_notification_failed", error=str(e), exc_info=True)
        return error_response(str(e), 500)

    return JSONResponse(
        content={
            "success": True,
            "message": f"Sent to {report.delivered} of {report.attempted} subscribers",
            "attempted": report.attempted,
            "delivered": report.delivered,
            "removed": report.removed,
        }
    )
