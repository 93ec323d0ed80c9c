from gemini_bridge.mcp.definitions import TOOL_NAME, list_tools
from gemini_bridge.mcp.router import RequestRouter
from gemini_bridge.mcp.server import McpServer

__all__ = ["TOOL_NAME", "list_tools", "RequestRouter", "McpServer"]
