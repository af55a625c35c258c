import json
import os
from dotenv import load_dotenv
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Dict, List

load_dotenv()

DEFAULT_EXCHANGE_ADDRESS = "0xeE0674C1E7d0f64057B6eCFe845DC2519443567F"
DEFAULT_PRICE_REQUESTED_TOPIC = "0xc52abe6244cd3d65bf38f77fae620a60fae313ce8f9c479d5c053f0e32bd8f04"


def _parse_csv(value: str, *, lower: bool = False) -> List[str]:
    if not value:
        return []
    items = [x.strip() for x in value.split(",")]
    items = [x for x in items if x]
    if lower:
        items = [x.lower() for x in items]
    return items


def _parse_token_int_map(value: str) -> Dict[str, int]:
    """
    Parses "0xToken:6,0xOther:18" into {"0xtoken": 6, "0xother": 18}.
    Keys are lowercased so lookups are address-equal regardless of checksum casing.
    """
    out: Dict[str, int] = {}
    for item in _parse_csv(value):
        token, sep, raw = item.partition(":")
        if not sep:
            raise ValueError(f"Expected 'token:value' entry, got {item!r}")
        out[token.strip().lower()] = int(raw.strip())
    return out


def _parse_bool(value: str, default: bool = False) -> bool:
    v = (value or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


def load_settings_file(path: str) -> tuple[Dict[str, int], Dict[str, int]]:
    """
    Loads the relay settings JSON:

        {
          "decimalsOverride": [{"token": "0x..", "decimals": 6}],
          "skipSlots":        [{"token": "0x..", "slot": 9}]
        }

    Returns (decimals_overrides, skip_slots), both keyed by lowercased token address.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Relay settings file not found: {p}")
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected settings JSON object in {p}, got {type(data).__name__}")

    decimals = {
        str(x["token"]).lower(): int(x["decimals"])
        for x in data.get("decimalsOverride") or []
    }
    skips = {
        str(x["token"]).lower(): int(x["slot"])
        for x in data.get("skipSlots") or []
    }
    return decimals, skips


@dataclass
class Settings:
    # signing / destination chain (oracle lives here)
    DEST_RPC_URL: str
    PRIVATE_KEY: str

    # source chain: simulation endpoint + plain reads (decimals)
    SIMULATION_RPC_URL: str
    SOURCE_RPC_URL: str

    # contracts / events
    EXCHANGE_ADDRESS: str = DEFAULT_EXCHANGE_ADDRESS
    PRICE_REQUESTED_TOPIC: str = DEFAULT_PRICE_REQUESTED_TOPIC

    # simulation
    SIMULATION_METHOD: str = "tenderly_simulateBundle"
    SIMULATION_BLOCK_TAG: str = "latest"
    SIMULATION_TIMEOUT_SEC: float = 30.0
    SLOT_RANGE: int = 202

    # submission
    GAS_PRICE_MULTIPLIER: Decimal = Decimal("1.5")
    SUBMIT_GAS_LIMIT: int = 1_500_000
    RELAY_STOP_ON_ERROR: bool = False
    RELAY_WAIT_FOR_RECEIPT: bool = False

    # per-token tables (lowercased address keys)
    DECIMALS_OVERRIDES: Dict[str, int] = field(default_factory=dict)
    SKIP_SLOTS: Dict[str, int] = field(default_factory=dict)

    # generic
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    decimals: Dict[str, int] = {}
    skips: Dict[str, int] = {}

    settings_path = os.getenv("RELAY_SETTINGS_PATH", "")
    if settings_path:
        decimals, skips = load_settings_file(settings_path)

    # env entries win over the file for the same token
    decimals.update(_parse_token_int_map(os.getenv("DECIMALS_OVERRIDES", "")))
    skips.update(_parse_token_int_map(os.getenv("SKIP_SLOTS", "")))

    simulation_url = os.getenv("SIMULATION_RPC_URL", "")

    return Settings(
        # Core chain
        DEST_RPC_URL=os.getenv("DEST_RPC_URL", ""),
        PRIVATE_KEY=os.getenv("PRIVATE_KEY", ""),
        SIMULATION_RPC_URL=simulation_url,
        SOURCE_RPC_URL=os.getenv("SOURCE_RPC_URL", "") or simulation_url,

        # Contracts
        EXCHANGE_ADDRESS=os.getenv("EXCHANGE_ADDRESS", DEFAULT_EXCHANGE_ADDRESS),
        PRICE_REQUESTED_TOPIC=os.getenv("PRICE_REQUESTED_TOPIC", DEFAULT_PRICE_REQUESTED_TOPIC),

        # Simulation
        SIMULATION_METHOD=os.getenv("SIMULATION_METHOD", "tenderly_simulateBundle"),
        SIMULATION_BLOCK_TAG=os.getenv("SIMULATION_BLOCK_TAG", "latest"),
        SIMULATION_TIMEOUT_SEC=float(os.getenv("SIMULATION_TIMEOUT_SEC", "30")),
        SLOT_RANGE=int(os.getenv("SLOT_RANGE", "202")),

        # Submission
        GAS_PRICE_MULTIPLIER=Decimal(os.getenv("GAS_PRICE_MULTIPLIER", "1.5")),
        SUBMIT_GAS_LIMIT=int(os.getenv("SUBMIT_GAS_LIMIT", "1500000")),
        RELAY_STOP_ON_ERROR=_parse_bool(os.getenv("RELAY_STOP_ON_ERROR", "")),
        RELAY_WAIT_FOR_RECEIPT=_parse_bool(os.getenv("RELAY_WAIT_FOR_RECEIPT", "")),

        DECIMALS_OVERRIDES=decimals,
        SKIP_SLOTS=skips,

        ENV=os.getenv("ENV", "dev"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )
