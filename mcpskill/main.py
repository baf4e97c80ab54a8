#!/usr/bin/env python3
"""
Main entry point for the mcpskill CLI.

This delegates to the UI layer in mcpskill.ui.cli to keep the
console script mapping stable.
"""

from mcpskill.ui.cli import run as mcp_skill


if __name__ == "__main__":
    mcp_skill()
