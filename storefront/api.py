"""Shared helpers for route handlers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TypeVar

import pydantic
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.errors import EmailDeliveryError, StorefrontError, ValidationError

if TYPE_CHECKING:
    from storefront.app import Services

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def read_json(request: Request) -> Any:
    """Parse the request body as JSON, raising ValidationError if it is not."""
    body = await request.body()
    try:
        return json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON") from None


def parse_payload(model: type[ModelT], data: Any) -> ModelT:
    """Validate a JSON object against a pydantic model; errors become 400s."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid {field}: {first.get('msg')}") from None


def _storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    content: dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, EmailDeliveryError) and exc.details:
        content["details"] = exc.details
    return JSONResponse(content, status_code=exc.status_code)


def install_error_handlers(app: FastAPI) -> None:
    """Translate StorefrontError subclasses into ``{"error": ...}`` responses."""
    app.add_exception_handler(StorefrontError, _storefront_error_handler)
