"""MCP front end for jsdebug-core."""
