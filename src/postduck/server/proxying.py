"""
Postduck Proxy Route Handling

Shared request handling for the agent's /proxy and the API's /api/proxy.
"""

import json
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from ..common.errors import ValidationError
from ..dispatch.dispatcher import RequestDispatcher
from ..request.models import ExecuteRequestParams, ExecuteResponse


def error_response(status_code: int, message: str) -> JSONResponse:
    """JSON response carrying a zero-status ExecuteResponse body."""
    return JSONResponse(
        status_code=status_code,
        content=ExecuteResponse.failure(f"Error: {message}").to_dict()
    )


async def handle_proxy_request(
    request: Request,
    dispatcher: RequestDispatcher,
    logger: logging.Logger,
    malformed_status: int = 400
) -> JSONResponse:
    """
    Decode ExecuteRequestParams, dispatch them off the event loop and
    serialize the ExecuteResponse.

    Status codes:
    - 200: upstream response, including 4xx/5xx and transport failures
    - 400: validation failure before dispatch
    - malformed_status: body is not a JSON object of request parameters
    - 500: unexpected internal error

    Args:
        request: Incoming HTTP request
        dispatcher: Dispatcher to run the request with
        logger: Logger of the surface handling the route
        malformed_status: Status for undecodable bodies
    """
    try:
        payload = await request.json()
        params = ExecuteRequestParams.from_dict(payload)
    except (json.JSONDecodeError, ValueError, AttributeError) as e:
        logger.warning(f"Rejected malformed proxy request: {e}")
        return error_response(malformed_status, f"Invalid request body: {e}")

    try:
        response = await run_in_threadpool(dispatcher.dispatch, params)
    except ValidationError as e:
        logger.info(f"Validation failed for {params.method} {params.url!r}: {e.message}")
        return error_response(400, e.message)
    except Exception as e:
        logger.exception(f"Unexpected error dispatching {params.method} {params.url}")
        return error_response(500, str(e) or type(e).__name__)

    return JSONResponse(content=response.to_dict())
