"""Access control for sensorrelay.

Two independent guards:
    DeviceGuard -- Static shared secret for device-facing endpoints
    OperatorGuard -- Username/password login with signed session tokens
"""

from sensorrelay.auth.device import DEVICE_KEY_HEADER, DeviceGuard
from sensorrelay.auth.operator import OperatorGuard, TokenIssuer, UserStore

__all__ = ["DEVICE_KEY_HEADER", "DeviceGuard", "OperatorGuard", "TokenIssuer", "UserStore"]
