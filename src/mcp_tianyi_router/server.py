"""MCP Server for Tianyi Router Management.

This module provides an MCP (Model Context Protocol) server for managing
China Telecom Tianyi routers through AI assistants. It exposes gateway
information and port forwarding management as MCP tools.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .tianyi_client import (
    DEFAULT_IP,
    DEFAULT_PASSWORD,
    DEFAULT_USERNAME,
    PortForwardingRule,
    TianyiBuilder,
    TianyiClient,
    TianyiError,
)

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Configuration for the Tianyi client."""

    host: str
    username: str
    password: str
    proxy: Optional[str] = None

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Create configuration from environment variables.

        Returns:
            ClientConfig with values from environment.
        """
        return cls(
            host=os.getenv("TIANYI_HOST", DEFAULT_IP),
            username=os.getenv("TIANYI_USERNAME", DEFAULT_USERNAME),
            password=os.getenv("TIANYI_PASSWORD", DEFAULT_PASSWORD),
            proxy=os.getenv("TIANYI_PROXY") or None,
        )

    def builder(self) -> TianyiBuilder:
        """Get a TianyiBuilder preloaded with this configuration."""
        return (
            TianyiBuilder()
            .ip(self.host)
            .username(self.username)
            .password(self.password)
            .proxy(self.proxy)
        )


class ClientManager:
    """Manages the Tianyi client lifecycle.

    Logs in lazily on first use and shares one TianyiClient between tool
    calls until it is reset.

    Attributes:
        config: Client configuration.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Initialize the client manager.

        Args:
            config: Optional client configuration. If not provided,
                    configuration is loaded from environment variables.
            transport: Optional httpx transport passed to every login.
        """
        self._config = config or ClientConfig.from_env()
        self._transport = transport
        self._client: Optional[TianyiClient] = None
        self._lock = asyncio.Lock()

    @property
    def config(self) -> ClientConfig:
        """Get the client configuration."""
        return self._config

    async def get_client(self) -> TianyiClient:
        """Get the logged-in client, logging in on first use.

        Returns:
            Authenticated TianyiClient instance.

        Raises:
            TianyiError: If login fails.
        """
        async with self._lock:
            if self._client is None:
                logger.debug("Logging in to Tianyi router at %s", self._config.host)
                builder = self._config.builder().transport(self._transport)
                self._client = await asyncio.to_thread(builder.build)
            return self._client

    async def reset_client(self) -> None:
        """Log out and drop the client, forcing a new login on next use."""
        async with self._lock:
            if self._client:
                client = self._client
                self._client = None
                try:
                    await asyncio.to_thread(client.logout)
                except TianyiError as e:
                    logger.warning("Error during logout: %s", e)
                finally:
                    client.close()
            logger.debug("Client reset")


# Global client manager instance
_client_manager = ClientManager()


def get_client_manager() -> ClientManager:
    """Get the global client manager.

    Returns:
        The global ClientManager instance.
    """
    return _client_manager


# Initialize MCP server
server = Server("mcp-tianyi-router")

_RULE_PROPERTIES: Dict[str, Any] = {
    "description": {
        "type": "string",
        "description": "Description (service name) identifying the rule"
    },
    "client": {
        "type": "string",
        "description": "LAN IP address to forward to"
    },
    "external_port": {
        "type": "integer",
        "description": "External port number"
    },
    "internal_port": {
        "type": "integer",
        "description": "Internal port number (defaults to external_port if not specified)"
    },
    "protocol": {
        "type": "string",
        "description": "Protocol, e.g. tcp or udp (default: tcp)"
    },
}

_DESCRIPTION_ONLY: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "description": _RULE_PROPERTIES["description"],
    },
    "required": ["description"]
}


def _get_tool_definitions() -> List[Tool]:
    """Get the list of available tool definitions.

    Returns:
        List of Tool definitions for the MCP server.
    """
    return [
        Tool(
            name="router_gateway_info",
            description="Get gateway information: LAN/WAN addresses, MAC, serial number and firmware",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="router_public_ip",
            description="Get the router's public (WAN) IP address",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="list_port_forwarding",
            description="List all port forwarding rules configured on the router",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="add_port_forwarding",
            description="Add a new port forwarding rule",
            inputSchema={
                "type": "object",
                "properties": _RULE_PROPERTIES,
                "required": ["description", "client", "external_port"]
            }
        ),
        Tool(
            name="delete_port_forwarding",
            description="Delete a port forwarding rule by description",
            inputSchema=_DESCRIPTION_ONLY,
        ),
        Tool(
            name="enable_port_forwarding",
            description="Enable a port forwarding rule by description",
            inputSchema=_DESCRIPTION_ONLY,
        ),
        Tool(
            name="disable_port_forwarding",
            description="Disable a port forwarding rule by description",
            inputSchema=_DESCRIPTION_ONLY,
        ),
        Tool(
            name="update_port_forwarding_client",
            description=(
                "Move every port forwarding rule from one LAN IP address to another. "
                "Rules are deleted and re-added; there is no rollback on failure."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "old_ip": {
                        "type": "string",
                        "description": "LAN IP address the rules currently forward to"
                    },
                    "new_ip": {
                        "type": "string",
                        "description": "LAN IP address to forward to instead"
                    }
                },
                "required": ["old_ip", "new_ip"]
            }
        ),
        Tool(
            name="router_logout",
            description="Log out from the router; the next tool call logs in again",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
    ]


def _rule_or_error(client: TianyiClient, description: str) -> PortForwardingRule:
    rule = client.get_port_forwarding_rule(description)
    if rule is None:
        raise ValueError(f"No port forwarding rule with description: {description}")
    return rule


def _handle_tool_call(
    client: TianyiClient,
    name: str,
    arguments: Dict[str, Any]
) -> Any:
    """Handle a tool call and return the result.

    Args:
        client: The TianyiClient instance.
        name: The tool name.
        arguments: The tool arguments.

    Returns:
        The JSON-serializable result of the tool call.

    Raises:
        ValueError: If the tool name is unknown or a rule is not found.
        TianyiError: If the router request fails.
    """
    if name == "router_gateway_info":
        return client.gateway_info().to_dict()

    elif name == "router_public_ip":
        return {"wan_ip": client.wan_ip()}

    elif name == "list_port_forwarding":
        return [rule.to_dict() for rule in client.get_port_forwarding_rules()]

    elif name == "add_port_forwarding":
        rule = PortForwardingRule(
            protocol=arguments.get("protocol", "tcp"),
            in_port=int(arguments.get("internal_port", arguments["external_port"])),
            enable=1,
            description=arguments["description"],
            client=arguments["client"],
            ex_port=int(arguments["external_port"]),
        )
        return client.add_port_forwarding_rule(rule).to_dict()

    elif name == "delete_port_forwarding":
        rule = _rule_or_error(client, arguments["description"])
        return client.delete_port_forwarding_rule(rule).to_dict()

    elif name == "enable_port_forwarding":
        rule = _rule_or_error(client, arguments["description"])
        return client.enable_port_forwarding_rule(rule.description, rule).to_dict()

    elif name == "disable_port_forwarding":
        rule = _rule_or_error(client, arguments["description"])
        return client.disable_port_forwarding_rule(rule.description, rule).to_dict()

    elif name == "update_port_forwarding_client":
        updated = client.update_port_forwarding_rule(arguments["old_ip"], arguments["new_ip"])
        return {
            "updated": len(updated),
            "rules": [rule.to_dict() for rule in updated],
        }

    else:
        raise ValueError(f"Unknown tool: {name}")


def _error_content(message: str) -> List[TextContent]:
    return [TextContent(type="text", text=json.dumps({"error": message}, indent=2))]


@server.list_tools()
async def list_tools() -> List[Tool]:
    """List available tools.

    Returns:
        List of available Tool definitions.
    """
    return _get_tool_definitions()


@server.call_tool()
async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
    """Handle tool calls.

    Args:
        name: The tool name to call.
        arguments: The arguments for the tool.

    Returns:
        List containing a single TextContent with the JSON result.
    """
    manager = get_client_manager()

    if name == "router_logout":
        await manager.reset_client()
        return [TextContent(type="text", text=json.dumps({"success": True}, indent=2))]

    try:
        client = await manager.get_client()
        result = await asyncio.to_thread(_handle_tool_call, client, name, arguments)
        return [TextContent(type="text", text=json.dumps(result, indent=2))]
    except (ValueError, KeyError) as e:
        logger.warning("Invalid tool call %s: %s", name, e)
        return _error_content(str(e))
    except TianyiError as e:
        logger.warning("Router error for %s: %s", name, e)
        # Stale token or cookie; log in again on the next call
        await manager.reset_client()
        return _error_content(str(e))
    except Exception as e:
        logger.exception("Tool call error for %s: %s", name, e)
        return _error_content(str(e))


def main() -> None:
    """Main entry point for the MCP server."""
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    async def run() -> None:
        """Run the MCP server."""
        logger.info("Starting MCP Tianyi Router server")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    asyncio.run(run())


if __name__ == "__main__":
    main()
