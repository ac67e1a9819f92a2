"""
Structured logging for Backend FlowIndex.

JSON logs with timestamp, event_type and block height fields.
Use get_logger() in all listener and stream modules.
"""

from backend_flowindex.flowindex_logging.logger import bind_height, get_logger

__all__ = ["bind_height", "get_logger"]
