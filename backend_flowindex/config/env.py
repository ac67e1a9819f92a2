"""
Environment variable loading and network identity for FlowIndex.

- FLOW_NETWORK: emulator | testnet | mainnet (default: mainnet)
- FLOW_ACCESS_URL: access node REST endpoint (default: public host of the network)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Project root: config is backend_flowindex/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

LOCAL_NETWORK = "emulator"
NETWORKS = ("emulator", "testnet", "mainnet")

EMULATOR_ACCESS_URL = "http://localhost:8888"
TESTNET_ACCESS_URL = "https://rest-testnet.onflow.org"
MAINNET_ACCESS_URL = "https://rest-mainnet.onflow.org"

# FlowFees vault (receives the fee deposit) per network
FLOW_FEES_ADDRESSES = {
    "emulator": "0xe5a8b7f23e8b548f",
    "testnet": "0x912d5440f7e3769e",
    "mainnet": "0xf919ee77447b7497",
}
FLOW_TOKEN_ADDRESSES = {
    "emulator": "0x0ae53cb6e3f42a79",
    "testnet": "0x7e60df042a9c0868",
    "mainnet": "0x1654653399040a61",
}


@dataclass(frozen=True)
class NetworkConfig:
    """Identity of the chain being indexed; passed explicitly to the normalizer and assembler."""

    name: str
    fee_receiver: str
    flow_token: str

    @property
    def is_local(self) -> bool:
        """The emulator seals blocks without a trailing system chunk transaction."""
        return self.name == LOCAL_NETWORK


def get_network_config(name: str) -> NetworkConfig:
    """Return the NetworkConfig for emulator | testnet | mainnet; ValueError otherwise."""
    key = (name or "").strip().lower()
    if key not in NETWORKS:
        raise ValueError(f"unknown flow network {name!r}, expected one of {', '.join(NETWORKS)}")
    return NetworkConfig(
        name=key,
        fee_receiver=FLOW_FEES_ADDRESSES[key],
        flow_token=FLOW_TOKEN_ADDRESSES[key],
    )


def load_flowindex_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def get_flow_network() -> str:
    """
    Return FLOW_NETWORK from env: emulator | testnet | mainnet.
    Default and fallback for unknown values: mainnet.
    """
    load_flowindex_env()
    raw = (os.getenv("FLOW_NETWORK") or "mainnet").strip().lower()
    if raw in ("emulator", "local", "localhost"):
        return "emulator"
    if raw == "testnet":
        return "testnet"
    return "mainnet"


def get_access_url() -> str:
    """
    Resolve the access node URL from env.
    Order: FLOW_ACCESS_URL > network default.
    """
    load_flowindex_env()
    url = (os.getenv("FLOW_ACCESS_URL") or "").strip()
    if url:
        return url.rstrip("/")
    network = get_flow_network()
    if network == "emulator":
        return EMULATOR_ACCESS_URL
    if network == "testnet":
        return TESTNET_ACCESS_URL
    return MAINNET_ACCESS_URL

