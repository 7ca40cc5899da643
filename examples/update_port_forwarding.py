#!/usr/bin/env python3
"""Move port forwarding rules from one LAN client to another.

Every rule forwarding to OLD_IP is deleted and re-added forwarding to
NEW_IP. Use this after a server on the LAN changes address.

Usage:
    python update_port_forwarding.py 192.168.1.11 192.168.1.12
"""

import os
import sys
from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mcp_tianyi_router.tianyi_client import TianyiBuilder, TianyiError

load_dotenv()

def main():
    if len(sys.argv) != 3:
        print("Usage: python update_port_forwarding.py <old_ip> <new_ip>")
        return

    old_ip, new_ip = sys.argv[1], sys.argv[2]

    password = os.getenv("TIANYI_PASSWORD")
    if not password:
        print("Error: TIANYI_PASSWORD not set")
        return

    try:
        client = (
            TianyiBuilder()
            .ip(os.getenv("TIANYI_HOST", "192.168.1.1"))
            .username(os.getenv("TIANYI_USERNAME", "useradmin"))
            .password(password)
            .build()
        )
    except TianyiError as e:
        print(f"Failed to login to router: {e}")
        return

    with client:
        updated = client.update_port_forwarding_rule(old_ip, new_ip)

        if not updated:
            print(f"No port forwarding rules point at {old_ip}")
        else:
            for rule in updated:
                print(f"  ✓ {rule.description}: {rule.ex_port} -> {rule.client}:{rule.in_port}")
            print("\nPort forwarding rules updated successfully.")

if __name__ == "__main__":
    main()
