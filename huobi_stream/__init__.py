"""Realtime Huobi push-feed client."""
from .client import HuobiStreamClient
from .config import Settings, load_settings, settings
from .exceptions import ContractViolation, FrameDecodeError, HuobiStreamError

__all__ = [
    "HuobiStreamClient",
    "Settings",
    "load_settings",
    "settings",
    "ContractViolation",
    "FrameDecodeError",
    "HuobiStreamError",
]
