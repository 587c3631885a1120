"""
MCP JSON-RPC 2.0 dispatch for the HTTP transport.

Handles one request object at a time. Discovery methods are public; every
other method needs an authenticated user.
"""

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core.errors import AuthError, RateLimitExceededError, ToolNotFoundError
from server.auth import Authenticator
from tools.research import ResearchService

__all__ = [
    "JsonRpcDispatcher",
    "PUBLIC_METHODS",
    "PROTOCOL_VERSION",
    "SERVER_INFO",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "UNAUTHORIZED",
    "RATE_LIMITED",
    "error_response",
    "validation_message",
]

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-06-18"
SERVER_INFO = {"name": "research-engine", "version": "2.0.0"}

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
UNAUTHORIZED = -32001
RATE_LIMITED = -32029

PUBLIC_METHODS = frozenset(
    {
        "initialize",
        "notifications/initialized",
        "tools/list",
        "resources/list",
        "prompts/list",
        "ping",
    }
)


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "Invalid input: " + "; ".join(parts)


class JsonRpcDispatcher:
    def __init__(self, service: ResearchService, authenticator: Authenticator):
        self.service = service
        self.authenticator = authenticator

    async def dispatch(
        self, payload: Any, authorization: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Handle a decoded JSON-RPC request.

        Returns the response object, or None for notifications.
        """
        if not isinstance(payload, dict) or payload.get("jsonrpc") != "2.0":
            return error_response(None, INVALID_REQUEST, "Invalid Request")

        request_id = payload.get("id")
        method = payload.get("method")
        if not isinstance(method, str):
            return error_response(request_id, INVALID_REQUEST, "Invalid Request: missing method")

        params = payload.get("params") or {}
        if not isinstance(params, dict):
            return error_response(request_id, INVALID_PARAMS, "Invalid params")

        user = None
        if method not in PUBLIC_METHODS:
            try:
                user = await self.authenticator.authenticate(authorization)
            except AuthError as e:
                return error_response(request_id, UNAUTHORIZED, f"Unauthorized: {e}")
        elif self.authenticator.disabled:
            user = await self.authenticator.authenticate(None)

        try:
            if method == "notifications/initialized":
                return None
            if method == "initialize":
                result: Dict[str, Any] = {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {"listChanged": True}},
                    "serverInfo": dict(SERVER_INFO),
                }
            elif method == "tools/list":
                result = {"tools": self.service.list_tools()}
            elif method == "tools/call":
                return await self._call_tool(request_id, params, user)
            elif method == "resources/list":
                result = {"resources": []}
            elif method == "prompts/list":
                result = {"prompts": []}
            elif method == "ping":
                result = {}
            else:
                return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        except Exception as e:
            logger.error(f"JSON-RPC {method} failed: {e}")
            return error_response(request_id, INTERNAL_ERROR, "Internal server error")

        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def _call_tool(
        self, request_id: Any, params: Dict[str, Any], user: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        name = params.get("name")
        arguments = params.get("arguments") or {}
        if not isinstance(name, str) or not self.service.has_tool(name):
            return error_response(request_id, INVALID_PARAMS, f"Tool not found: {name}")
        if not isinstance(arguments, dict):
            return error_response(request_id, INVALID_PARAMS, "Tool arguments must be an object")

        try:
            output = await self.service.call_tool(name, arguments, user=user)
        except ValidationError as e:
            return error_response(request_id, INVALID_PARAMS, validation_message(e))
        except RateLimitExceededError as e:
            return error_response(request_id, RATE_LIMITED, str(e), {"retryIn": e.retry_in})
        except ToolNotFoundError as e:
            return error_response(request_id, INVALID_PARAMS, str(e))
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return error_response(request_id, INTERNAL_ERROR, f"Tool execution failed: {e}")

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": {
                "content": [{"type": "text", "text": json.dumps(output, indent=2)}],
                "isError": output.get("success") is False,
            },
        }
