"""MCP tool implementations shared by the stdio and HTTP transports."""

from tools.research import TOOL_DEFINITIONS, ResearchService

__all__ = ["ResearchService", "TOOL_DEFINITIONS"]
