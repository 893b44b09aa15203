"""
Data-center simulation modules: servers and pool generation.
"""

from .server import Server, ServerType
from .heterogeneity import ServerMix, ServerPoolGenerator, create_servers

__all__ = [
    "Server",
    "ServerType",
    "ServerMix",
    "ServerPoolGenerator",
    "create_servers"
]
