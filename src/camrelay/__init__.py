"""camrelay -- Dual-channel relay for IoT camera and sensor data.

This package relays a live MJPEG camera feed from an embedded device to
browser clients over WebSockets, and rebroadcasts JSON sensor/control
messages between every peer connected to a shared data channel.
"""

__version__ = "0.1.0"
