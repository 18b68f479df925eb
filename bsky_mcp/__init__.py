"""
Bluesky MCP server.

Exposes Bluesky profile, feed, thread, search, notification and posting
operations as Model Context Protocol tools over stdio.
"""

__version__ = "0.1.0"
