"""HTTP surface: FastAPI app, bearer auth and MCP JSON-RPC dispatch."""

from server.app import create_app
from server.auth import Authenticator, TokenVerifier
from server.jsonrpc import JsonRpcDispatcher

__all__ = ["create_app", "Authenticator", "TokenVerifier", "JsonRpcDispatcher"]
