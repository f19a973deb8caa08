"""sensorrelay -- Relay between a sensor/LED device and live web clients.

The device pushes temperature/humidity readings over HTTP and picks up
queued LED commands in the response. Browsers read the buffered history,
change the LED color, and receive live updates over a WebSocket. The same
application can instead sit in front of the device's own embedded HTTP
server and proxy requests to it.
"""

__version__ = "0.1.0"
