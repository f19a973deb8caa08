"""Relay core: history buffer, command queue, liveness and shared state.

Public API:
    RelayState -- Owns all mutable relay state and its operations
    run_liveness_sweep -- Background task flagging a silent device
"""

from sensorrelay.relay.liveness import run_liveness_sweep
from sensorrelay.relay.state import RelayState

__all__ = ["RelayState", "run_liveness_sweep"]
