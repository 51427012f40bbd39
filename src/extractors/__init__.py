"""Upstream API clients."""

from .base_client import BaseClient
from .eia import EiaClient
from .faostat import FaostatClient
from .imf import ImfClient
from .oecd import OecdClient
from .payload import Payload, PayloadKind, decode_payload
from .result import ExtractionResult
from .rpc import RpcClient
from .world_bank import WorldBankClient

__all__ = [
    "BaseClient",
    "EiaClient",
    "ExtractionResult",
    "FaostatClient",
    "ImfClient",
    "OecdClient",
    "Payload",
    "PayloadKind",
    "RpcClient",
    "WorldBankClient",
    "decode_payload",
]
