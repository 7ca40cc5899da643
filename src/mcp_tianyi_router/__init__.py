"""Client and MCP server for China Telecom Tianyi routers.

This package talks to the router's undocumented web administration API
to read gateway information and manage port forwarding rules, and
exposes the same operations as MCP (Model Context Protocol) tools for
AI assistant integration.

Example usage:
    >>> from mcp_tianyi_router import TianyiBuilder
    >>> client = TianyiBuilder().password("my_password").build()
    >>> print(client.wan_ip())
    >>> client.update_port_forwarding_rule("192.168.1.11", "192.168.1.12")

For MCP server usage, run:
    $ mcp-tianyi-router
"""

from .server import ClientConfig, ClientManager, get_client_manager, main
from .tianyi_client import (
    ActionResult,
    AuthenticationError,
    GatewayInfo,
    ParseError,
    PortForwardingAction,
    PortForwardingData,
    PortForwardingRule,
    Session,
    TianyiBuilder,
    TianyiClient,
    TianyiError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    # Main entry point
    "main",
    # Client
    "TianyiBuilder",
    "TianyiClient",
    "Session",
    # Server components
    "ClientConfig",
    "ClientManager",
    "get_client_manager",
    # Data classes
    "GatewayInfo",
    "PortForwardingRule",
    "PortForwardingData",
    "ActionResult",
    "PortForwardingAction",
    # Exceptions
    "TianyiError",
    "TransportError",
    "ParseError",
    "AuthenticationError",
]
