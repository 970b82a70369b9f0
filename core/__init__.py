# =============================================================================
# core/__init__.py
# =============================================================================
# This package contains ALL npm lookup, caching and aggregation logic.
#
# ARCHITECTURAL RULE:
#   Nothing in this package imports FastMCP.  The only I/O dependencies are
#   httpx (upstream APIs) and the filesystem (lockfile probe), and both are
#   injectable, so every module can be exercised in a test without a server
#   or network access.
# =============================================================================
