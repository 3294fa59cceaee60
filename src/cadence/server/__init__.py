"""HTTP server for Cadence."""

from cadence.server.app import CadenceServer, create_app
from cadence.server.runner import ServerRunner

__all__ = [
    "CadenceServer",
    "ServerRunner",
    "create_app",
]
