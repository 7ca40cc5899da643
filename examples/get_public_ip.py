#!/usr/bin/env python3
"""Print the public IP addresses of a Tianyi router."""

import os
import sys
from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mcp_tianyi_router.tianyi_client import TianyiBuilder, TianyiError

# Load environment variables from .env file
load_dotenv()

def main():
    password = os.getenv("TIANYI_PASSWORD")

    if not password:
        print("Error: TIANYI_PASSWORD not set in environment or .env file")
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
        info = client.gateway_info()
        print(f"Public IP: {info.wan_ip}, IPv6: {info.wan_ipv6}")

if __name__ == "__main__":
    main()
