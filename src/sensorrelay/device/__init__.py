"""HTTP clients on the device side of the relay.

Public API:
    UpstreamDevice -- Client for the device's embedded server (proxy mode)
    SimulatedDevice -- Software device that pushes readings to a relay
"""

__all__ = ["UpstreamDevice", "SimulatedDevice"]


def __getattr__(name: str) -> type:
    """Lazy import for the clients, which pull in httpx."""
    if name == "UpstreamDevice":
        from sensorrelay.device.upstream import UpstreamDevice
        return UpstreamDevice
    if name == "SimulatedDevice":
        from sensorrelay.device.simulator import SimulatedDevice
        return SimulatedDevice
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
