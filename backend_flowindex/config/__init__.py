"""
Configuration management for Backend FlowIndex.

Loads and validates settings from environment variables and an optional
.env file. Network identity and conversion options are handed to the
listener explicitly rather than read from module state.
"""

from backend_flowindex.config.env import NetworkConfig, get_network_config  # noqa: F401
from backend_flowindex.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["NetworkConfig", "Settings", "get_network_config", "get_settings"]
