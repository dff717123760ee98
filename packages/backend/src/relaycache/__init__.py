"""relaycache — cache-aside product catalog with real-time change fan-out.

Reads are served from a cache in front of a relational store. Writes
invalidate the cache and publish a change event that every connected
WebSocket session receives.
"""

__version__ = "0.1.0"
