"""Dashboard sync: the aiohttp WebSocket gateway, its wire protocol and a reconnecting client."""

from legato.infrastructure.web.client import BackoffPolicy, ConnectionState, DashboardConnection
from legato.infrastructure.web.gateway import SessionBroadcaster, SyncGateway

__all__ = [
    "BackoffPolicy",
    "ConnectionState",
    "DashboardConnection",
    "SessionBroadcaster",
    "SyncGateway",
]
