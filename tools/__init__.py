# =============================================================================
# tools/__init__.py
# =============================================================================
# This package contains the FastMCP tool wrappers.
#
# ARCHITECTURAL ROLE:
#   tools/ is the translation layer between MCP and core/.  mcp_server.py:
#     1. Declares each tool with its wire name and typed parameters
#     2. Forwards the call to core.sentinel.NpmSentinel
#     3. Returns the JSON text, or raises ToolError for whole-call failures
#
# WHAT TOOLS DO NOT DO:
#   - They do NOT validate package names or talk to upstreams (core/ does)
#   - They do NOT cache anything themselves
#
# The docstrings are read by the calling model to decide WHEN to use a
# tool, so they describe inputs and outcomes, not implementation.
# =============================================================================
