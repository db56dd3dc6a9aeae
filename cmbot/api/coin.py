# cmbot/api/coin.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from cmbot.schemas.currency import CurrencyDetails
from cmbot.services.currency_resolver import CurrencyNotFound, CurrencyResolver
from cmbot.services.presentation import CurrencyRenderer, change_colors


router = APIRouter(prefix="/coin", tags=["coin"])


def _error_response(
    *,
    code: str,
    message: str,
    status_code: int = 400,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=payload)


def _not_found(result: CurrencyNotFound) -> JSONResponse:
    return _error_response(
        code="currency_not_found",
        message=f"Currency not found: {result.query}",
        status_code=404,
        details={"query": result.query},
    )


def _resolver(request: Request) -> CurrencyResolver:
    return request.app.state.resolver


def _renderer(request: Request) -> CurrencyRenderer:
    return request.app.state.renderer


@router.get("/{currency}", response_model=CurrencyDetails)
def get_coin(currency: str, request: Request):
    result = _resolver(request).resolve(currency)
    if isinstance(result, CurrencyNotFound):
        return _not_found(result)
    return result


@router.get("/{currency}/colors")
def get_coin_colors(currency: str, request: Request):
    result = _resolver(request).resolve(currency)
    if isinstance(result, CurrencyNotFound):
        return _not_found(result)
    return {"symbol": result.symbol, "colors": change_colors(result)}


@router.get("/{currency}/card")
def get_coin_card(currency: str, request: Request):
    result = _resolver(request).resolve(currency)
    if isinstance(result, CurrencyNotFound):
        return _not_found(result)

    renderer = _renderer(request)
    return Response(content=renderer.render(result), media_type=renderer.content_type)
