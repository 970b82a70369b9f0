# =============================================================================
# main.py  —  Entry Point for the npm sentinel MCP server
# =============================================================================
#
# HOW TO RUN:
#   python main.py
#
#   or point an MCP client at it, e.g.
#     {"command": "python", "args": ["/path/to/main.py"]}
#
# WHAT HAPPENS:
#   1. .env is loaded into the environment (NPM_SENTINEL_*, GITHUB_TOKEN)
#   2. tools/mcp_server.py builds Settings, the NpmSentinel and the FastMCP
#      server with all npm tools registered
#   3. The server speaks MCP over stdio until the client disconnects
#
# Logs go to STDERR; STDOUT belongs to the protocol.
# =============================================================================

from dotenv import load_dotenv

# Must run BEFORE importing the server: Settings.from_env() reads the
# environment at import time.
load_dotenv()

from tools.mcp_server import mcp


def main() -> None:
    mcp.run()


# =============================================================================
# Script entry point
# =============================================================================
if __name__ == "__main__":
    main()
