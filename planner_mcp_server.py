"""
Planner MCP Server - Entry Point
=================================
Thin wrapper that imports and runs the MCP server from the planner_mcp package.
See planner_mcp/server.py for the full implementation.

Usage:
    python planner_mcp_server.py             # stdio transport (for Claude Desktop)
    python planner_mcp_server.py --http      # MCP over streamable HTTP
    python planner_mcp_server.py --events    # task event stream + REST proxy
"""

from planner_mcp.server import main

if __name__ == "__main__":
    main()
