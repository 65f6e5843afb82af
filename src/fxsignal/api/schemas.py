"""Request bodies accepted by the JSON API and the shared body reader.

Field names follow the push client's camelCase; snake_case is accepted too.
"""

from __future__ import annotations

from typing import Any, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from fxsignal.journal.tracker import CloseOutcome
from fxsignal.models import AlertDirection, TradeDirection

ModelT = TypeVar("ModelT", bound=BaseModel)


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class SubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1)
    keys: SubscriptionKeys
    expiration_time: float | None = Field(
        default=None, validation_alias=AliasChoices("expirationTime", "expiration_time")
    )


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1)


class SetAlertRequest(BaseModel):
    subscriber_id: str = Field(
        validation_alias=AliasChoices("userId", "subscriberId", "subscriber_id")
    )
    pair_id: str = Field(validation_alias=AliasChoices("pairId", "pair_id"))
    target_price: float = Field(
        gt=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("targetPrice", "target_price"),
    )
    direction: AlertDirection


class RecordTradeRequest(BaseModel):
    pair_id: str = Field(validation_alias=AliasChoices("pairId", "pair_id"))
    direction: TradeDirection


class CloseTradeRequest(BaseModel):
    outcome: CloseOutcome
    exit_price: float | None = Field(
        default=None,
        gt=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("exitPrice", "exit_price"),
    )


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(content={"success": False, "error": message}, status_code=status_code)


async def read_body(request: Request, model: type[ModelT]) -> ModelT | JSONResponse:
    """Parse and validate a JSON body, or return the 400 response to send."""
    try:
        body = await request.json()
    except Exception:
        return error_response("Invalid JSON body", 400)
    try:
        return model.model_validate(body)
    except ValidationError as e:
        errors: list[dict[str, Any]] = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return JSONResponse(content={"success": False, "errors": errors}, status_code=400)
