"""
Langoustine MCP Server

stdio MCP server exposing rememberDeveloperInstruction and getRelevantRules.
"""

from .server import MCPServerApp, build_app, main

__all__ = [
    "MCPServerApp",
    "build_app",
    "main",
]
