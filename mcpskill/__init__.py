"""mcpskill - share one long-running MCP server connection across CLI calls."""

__version__ = "0.1.0"
