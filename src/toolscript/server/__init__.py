"""HTTP server mode."""

from toolscript.server.http_server import ToolscriptHTTPServer, parse_listen_address

__all__ = ["ToolscriptHTTPServer", "parse_listen_address"]
