#!/usr/bin/env python3
"""List all port forwarding rules from a Tianyi router."""

import os
import json
from dotenv import load_dotenv

# Add parent directory to path for imports
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mcp_tianyi_router.tianyi_client import TianyiBuilder, TianyiError

# Load environment variables from .env file
load_dotenv()

def main():
    # Get router configuration from environment
    host = os.getenv("TIANYI_HOST", "192.168.1.1")
    password = os.getenv("TIANYI_PASSWORD")

    if not password:
        print("Error: TIANYI_PASSWORD not set in environment or .env file")
        print("Create a .env file with:")
        print("  TIANYI_HOST=192.168.1.1")
        print("  TIANYI_PASSWORD=your_password")
        return

    print(f"Connecting to router at {host}...")

    try:
        client = TianyiBuilder().ip(host).password(password).build()
    except TianyiError as e:
        print(f"Failed to login to router: {e}")
        return

    try:
        data = client.port_forwarding()

        print(f"\nLAN {data.lan_ip} / {data.mask}, {data.count} rule(s)")
        print("-" * 80)

        if not data.rules:
            print("No port forwarding rules found")
        else:
            print(f"{'Description':<20} {'Client':<16} {'Ext Port':<10} {'Int Port':<10} {'Protocol':<10} {'Enabled':<8}")
            print("-" * 80)

            for rule in data.rules.values():
                print(f"{rule.description:<20} "
                      f"{rule.client:<16} "
                      f"{rule.ex_port:<10} "
                      f"{rule.in_port:<10} "
                      f"{rule.protocol:<10} "
                      f"{'yes' if rule.enabled else 'no':<8}")

        # Also print as JSON for debugging
        print("\n\nRaw JSON output:")
        print(json.dumps(data.to_dict(), indent=2))

    finally:
        client.logout()
        client.close()
        print("\nDisconnected from router")

if __name__ == "__main__":
    main()
