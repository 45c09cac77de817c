"""
HR Consultant MCP Server.

This package exposes HR consultant data as MCP tools and widget resources over
stateless streamable HTTP (JSON-RPC 2.0), for ChatGPT, Copilot and other MCP
clients that render widget templates.
"""

__version__ = "1.0.0"
