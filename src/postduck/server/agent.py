"""
Postduck Local Agent

Small HTTP server that runs on the user's machine so the hosted web app can
reach localhost targets. It accepts ExecuteRequestParams on /proxy and sends
them directly; it never routes a request back through itself.

Features:
- GET /health for discovery by the web app and the dispatcher
- POST /proxy to execute one request
- CORS for the hosted web origin and local development origins
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..common.config import PostduckConfig
from ..dispatch.dispatcher import RequestDispatcher
from .proxying import handle_proxy_request


def build_origin_regex(web_origin: str) -> str:
    """
    Regex for origins allowed to call the agent.

    Accepts the web origin's host and its subdomains plus localhost and
    127.0.0.1, over http or https, on any port.

    Example:
        build_origin_regex('https://postduck.org')
        # 'https?://((?:[a-z0-9-]+\\.)*postduck\\.org|localhost|127\\.0\\.0\\.1)(:\\d+)?'
    """
    host = urlparse(web_origin).hostname or web_origin
    return rf"https?://((?:[a-z0-9-]+\.)*{re.escape(host)}|localhost|127\.0\.0\.1)(:\d+)?"


class AgentServer:
    """
    FastAPI application for the local agent.

    Example:
        server = AgentServer(PostduckConfig(agent_port=19199))
        server.start()
    """

    def __init__(
        self,
        config: Optional[PostduckConfig] = None,
        dispatcher: Optional[RequestDispatcher] = None
    ):
        """
        Initialize agent server.

        Args:
            config: Agent settings (port, web origin, timeouts)
            dispatcher: Dispatcher to use; must not route via the agent
        """
        self.config = config or PostduckConfig()
        self.dispatcher = dispatcher or RequestDispatcher(self.config, prefer_direct=True)
        self.dispatcher.prefer_direct = True

        self.logger = logging.getLogger("postduck.agent")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="Postduck Agent",
            description="Local companion agent proxying requests to localhost targets",
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

        @app.post("/proxy")
        async def proxy(request: Request):
            return await handle_proxy_request(request, self.dispatcher, self.logger, malformed_status=500)

        @app.exception_handler(404)
        async def not_found(request: Request, exc):
            return JSONResponse(status_code=404, content={'error': 'Not found'})

        return app

    def start(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the agent.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
        """
        actual_host = host or self.config.agent_host
        actual_port = port or self.config.agent_port

        print(f"\n🚀 Postduck Agent v{__version__}")
        print(f"   Listening on http://localhost:{actual_port}")
        print(f"   Ready to proxy localhost requests!\n")

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level
        )
        print("✅ Agent stopped\n")

    def get_app(self) -> FastAPI:
        """Get the FastAPI app instance for testing or custom deployment."""
        return self.app


def create_agent_app(
    config: Optional[PostduckConfig] = None,
    dispatcher: Optional[RequestDispatcher] = None
) -> FastAPI:
    """Convenience function returning the agent's FastAPI app."""
    return AgentServer(config, dispatcher).get_app()
