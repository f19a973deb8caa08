"""Live push channel for sensorrelay.

Public API:
    BroadcastHub -- Non-blocking fan-out to connected clients
    Subscription -- One client's bounded event queue
"""

from sensorrelay.broadcast.hub import BroadcastHub, Subscription

__all__ = ["BroadcastHub", "Subscription"]
