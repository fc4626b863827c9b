"""
hookcatch: local webhook capture server.

Stores every inbound request to /webhook as a numbered event in a single-file
SQLite store and mirrors new events to live dashboard listeners over SSE.
"""

__version__ = "0.1.0"
