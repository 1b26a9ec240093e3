"""Offline Cache Proxy.

Network-first request interception with a versioned, pre-populated cache
bucket and notification handling, driven through explicit lifecycle events.
"""

__version__ = "0.1.0"
