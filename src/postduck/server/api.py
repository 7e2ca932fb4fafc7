"""
Postduck Direct Dispatch API

HTTP surface of the hosted server: proxies requests to public targets and
exposes the curl and Postman importers.
"""

import json
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from .. import __version__
from ..common.config import PostduckConfig
from ..common.errors import CurlParseError, PostmanParseError
from ..dispatch.dispatcher import RequestDispatcher
from ..importers.curl import parse_curl
from ..importers.postman import parse_postman_collection
from .agent import build_origin_regex
from .proxying import handle_proxy_request

PARSED_CURL_FIELDS = ('method', 'url', 'headers', 'body', 'authType', 'authConfig')


class ApiServer:
    """
    FastAPI application for direct dispatch.

    Routes:
    - POST /api/proxy: execute ExecuteRequestParams
    - POST /api/parse-curl: {curlCommand} to a request descriptor
    - POST /api/import/postman: collection JSON to a parsed collection
    - GET /health

    Example:
        server = ApiServer(load_config('postduck.yaml'))
        server.start(port=8000)
    """

    def __init__(
        self,
        config: Optional[PostduckConfig] = None,
        dispatcher: Optional[RequestDispatcher] = None
    ):
        self.config = config or PostduckConfig()
        self.dispatcher = dispatcher or RequestDispatcher(self.config)

        self.logger = logging.getLogger("postduck.dispatch")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="Postduck API",
            description="Direct request dispatch and import endpoints",
            version=__version__
        )

        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=build_origin_regex(self.config.web_origin),
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

        @app.get("/health")
        async def health():
            return JSONResponse(content={'status': 'ok', 'version': __version__})

        @app.post("/api/proxy")
        async def proxy(request: Request):
            return await handle_proxy_request(request, self.dispatcher, self.logger)

        @app.post("/api/parse-curl")
        async def parse_curl_command(request: Request):
            try:
                payload = await request.json()
            except json.JSONDecodeError:
                return JSONResponse(status_code=400, content={'error': 'Invalid curl command'})

            command = payload.get('curlCommand') if isinstance(payload, dict) else None
            try:
                parsed = parse_curl(command)
            except CurlParseError as e:
                return JSONResponse(status_code=400, content={'error': str(e)})

            data = parsed.to_dict()
            return JSONResponse(content={key: data[key] for key in PARSED_CURL_FIELDS})

        @app.post("/api/import/postman")
        async def import_postman(request: Request):
            body = await request.body()
            try:
                parsed = await run_in_threadpool(parse_postman_collection, body.decode('utf-8', errors='replace'))
            except PostmanParseError as e:
                return JSONResponse(status_code=400, content={'error': str(e)})

            self.logger.info(f"Parsed Postman collection {parsed.name!r} ({len(parsed.requests)} requests)")
            return JSONResponse(content=parsed.to_dict())

        return app

    def start(self, host: Optional[str] = None, port: Optional[int] = None):
        actual_host = host or self.config.api_host
        actual_port = port or self.config.api_port

        print(f"🚀 Postduck API v{__version__} starting...")
        print(f"   Host: {actual_host}:{actual_port}")
        print(f"   Timeout: {self.config.request_timeout:g}s")
        print()

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level
        )

    def get_app(self) -> FastAPI:
        return self.app


def create_api_app(
    config: Optional[PostduckConfig] = None,
    dispatcher: Optional[RequestDispatcher] = None
) -> FastAPI:
    """Convenience function returning the direct dispatch FastAPI app."""
    return ApiServer(config, dispatcher).get_app()
