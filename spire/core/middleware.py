"""CORS, request-id and logging middleware, plus the response envelope.

Every API route uses ``EnvelopeRoute``: successful JSON bodies are wrapped
as ``{success: true, data, meta?}`` and any error raised while resolving
dependencies or running the handler becomes ``{success: false, error,
details?}``. Handlers never format error JSON themselves.
"""

import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from spire.core.config import settings
from spire.core.exceptions import BadRequest, InternalServerError, SpireError

logger = logging.getLogger("spire")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Add a unique request ID to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response: Response = await call_next(request)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response


def error_response(exc: SpireError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.error))


def available_fields(model: type) -> str:
    """Describe a body model's fields, e.g. ``"name (required), port (optional)"``."""
    return ", ".join(
        f"{info.alias or name} ({'required' if info.is_required() else 'optional'})"
        for name, info in model.model_fields.items()
    )


def _body_model(route: APIRoute) -> Optional[type]:
    for param in route.dependant.body_params:
        annotation = getattr(getattr(param, "field_info", None), "annotation", None)
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            return annotation
    return None


def validation_error(exc: RequestValidationError, route: APIRoute) -> BadRequest:
    """Flatten pydantic errors into ``{field: [messages]}`` plus a field hint."""
    details: Dict[str, Any] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        key = ".".join(loc[1:]) or (loc[0] if loc else "body")
        details.setdefault(key, []).append(err.get("msg", "Invalid value"))
    model = _body_model(route)
    if model is not None:
        details["availableFields"] = available_fields(model)
    return BadRequest("Invalid request data", details)


def envelope(response: Response) -> Response:
    """Wrap a 2xx JSON response; anything else passes through unchanged."""
    if not 200 <= response.status_code < 300:
        return response
    if "application/json" not in response.headers.get("content-type", ""):
        return response
    try:
        payload = json.loads(response.body)
    except (AttributeError, ValueError):
        return response

    if isinstance(payload, dict) and "data" in payload and "meta" in payload:
        content = {"success": True, "data": payload["data"], "meta": payload["meta"]}
    else:
        content = {"success": True, "data": payload}

    headers = {
        k: v for k, v in response.headers.items()
        if k.lower() not in ("content-length", "content-type")
    }
    return JSONResponse(
        content=content,
        status_code=response.status_code,
        headers=headers,
        background=response.background,
    )


class EnvelopeRoute(APIRoute):
    """Route class normalising every outcome into the response envelope."""

    def get_route_handler(self) -> Callable:
        handler = super().get_route_handler()

        async def envelope_handler(request: Request) -> Response:
            try:
                response = await handler(request)
            except SpireError as exc:
                return error_response(exc)
            except RequestValidationError as exc:
                return error_response(validation_error(exc, self))
            except HTTPException:
                raise
            except Exception:
                logger.exception("Unhandled error in %s %s", request.method, request.url.path)
                return error_response(InternalServerError())
            return envelope(response)

        return envelope_handler


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def spire_exception_handler(request: Request, exc: SpireError) -> JSONResponse:
    return error_response(exc)


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware and fallback error handlers for the application."""
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID + timing
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SpireError, spire_exception_handler)
