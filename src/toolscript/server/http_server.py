"""
HTTP server exposing the engine.

Lets SDKs and other front ends run programs, list tools and models, and
drive chat turns over JSON without spawning a process per call.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from aiohttp import web

from ..engine import Engine
from ..exceptions import ConfigurationError, LoadError, ToolscriptError
from ..program import ProgramLoader
from ..shared import CancellationToken, Program, RuntimeOptions

__all__ = ["ToolscriptHTTPServer", "parse_listen_address"]

logger = logging.getLogger(__name__)


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``host:port``; an empty host means localhost."""
    host, sep, port_s = address.rpartition(":")
    if not sep or not port_s.isdigit():
        raise ConfigurationError(f"invalid listen address: {address}")
    port = int(port_s)
    if port > 65535:
        raise ConfigurationError(f"invalid listen address: {address}")
    return host.strip("[]") or "127.0.0.1", port


class ToolscriptHTTPServer:
    """
    JSON-over-HTTP front end for the engine.

    Request bodies name the program either by ``file`` (path or remote
    reference) or inline ``content``, with optional ``subTool``, ``input``
    and, for chat, ``chatState``.
    """

    def __init__(
        self,
        listen_address: str,
        options: RuntimeOptions,
        *,
        engine: Optional[Engine] = None,
        loader: Optional[ProgramLoader] = None,
    ):
        """
        Initialize HTTP server.

        Args:
            listen_address: ``host:port`` to bind; port 0 picks a free port
            options: Runtime options shared by every request
            engine: Engine to serve; one is created from ``options`` if omitted
            loader: Program loader; one is created on the engine's cache if omitted
        """
        self.host, self.port = parse_listen_address(listen_address)
        self.options = options
        self.engine = engine or Engine(options)
        self.loader = loader or ProgramLoader(self.engine.cache)
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None

        self.app.router.add_get("/healthz", self.handle_health)
        self.app.router.add_get("/models", self.handle_models)
        self.app.router.add_post("/run", self.handle_run)
        self.app.router.add_post("/list-tools", self.handle_list_tools)
        self.app.router.add_post("/chat", self.handle_chat)

    async def start(self, token: CancellationToken) -> None:
        """Serve until ``token`` is cancelled, then shut down gracefully."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        addresses = self.runner.addresses
        if addresses:
            self.port = int(addresses[0][1])
        logger.info("listening on %s:%d", self.host, self.port)
        try:
            await token.wait()
        finally:
            await self.close(graceful=True)

    async def close(self, graceful: bool = True) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            logger.info("HTTP server stopped")
        await self.engine.close(graceful=graceful)

    async def _program(self, body: Dict[str, Any]) -> Program:
        sub_tool = str(body.get("subTool") or "")
        if body.get("content"):
            return await self.loader.from_source(str(body["content"]), sub_tool, "request")
        if body.get("file"):
            return await self.loader.from_reference(str(body["file"]), sub_tool)
        raise ValueError("request must include file or content")

    async def _json_body(self, request: web.Request) -> Dict[str, Any]:
        if not request.can_read_body:
            return {}
        body = await request.json()
        if not isinstance(body, dict):
            raise ValueError("request body must be a JSON object")
        return body

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def handle_models(self, request: web.Request) -> web.Response:
        providers = request.query.getall("provider", [])
        try:
            models = await self.engine.list_models(providers)
        except ToolscriptError as e:
            return web.json_response({"error": str(e)}, status=502)
        return web.json_response({"models": models})

    async def handle_list_tools(self, request: web.Request) -> web.Response:
        try:
            body = await self._json_body(request)
            program = (
                await self._program(body)
                if body.get("file") or body.get("content")
                else Program()
            )
        except (ValueError, LoadError) as e:
            return web.json_response({"error": str(e)}, status=400)
        tools = self.engine.list_tools(program)
        return web.json_response({"tools": [t.to_dict() for t in tools]})

    async def handle_run(self, request: web.Request) -> web.Response:
        """
        Handle POST /run - run the program's entry tool once.

        Returns:
            JSON response with ``output``, 400 on bad requests and load
            errors, 500 on execution errors
        """
        try:
            body = await self._json_body(request)
            program = await self._program(body)
        except (ValueError, LoadError) as e:
            return web.json_response({"error": str(e)}, status=400)
        env = {**self.options.env, **(body.get("env") or {})}
        try:
            output = await self.engine.run(program, env, str(body.get("input") or ""))
        except ToolscriptError as e:
            logger.warning("run failed: %s", e)
            return web.json_response({"error": str(e)}, status=500)
        return web.json_response({"output": output})

    async def handle_chat(self, request: web.Request) -> web.Response:
        try:
            body = await self._json_body(request)
            program = await self._program(body)
        except (ValueError, LoadError) as e:
            return web.json_response({"error": str(e)}, status=400)
        env = {**self.options.env, **(body.get("env") or {})}
        state = body.get("chatState") or None
        if isinstance(state, dict):
            state = json.dumps(state)
        try:
            response = await self.engine.chat(
                state, program, env, str(body.get("input") or "")
            )
        except ToolscriptError as e:
            logger.warning("chat turn failed: %s", e)
            return web.json_response({"error": str(e)}, status=500)
        return web.json_response(response.to_dict())
