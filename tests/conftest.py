"""Shared fixtures: an in-memory Tianyi router behind httpx.MockTransport."""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from mcp_tianyi_router.tianyi_client import TianyiBuilder, TianyiClient

TOKEN = "0123456789abcdef0123456789abcdef"
SESSION_COOKIE = "sysauth=f00dcafe"

LOGIN_PAGE = f"""<html><script>
var config = {{
    token: '{TOKEN}',
    lang: 'zh-cn'
}};
</script></html>"""

GATEWAY_INFO = {
    "LANIP": "192.168.1.1",
    "LANIPv6": "fe80::1",
    "MAC": "AA:BB:CC:DD:EE:FF",
    "WANIP": "203.0.113.7",
    "WANIPv6": "2001:db8::7",
    "ProductSN": "SN123456",
    "DevType": "TEWA-708G",
    "SWVer": "V1.0.0",
    "ProductCls": "E8-C",
}


class FakeRouter:
    """Stateful stand-in for the router's web API.

    Records every request and keeps a rule table that pmSetSingle mutates.
    """

    def __init__(
        self,
        rules: Optional[Dict[str, Dict[str, Any]]] = None,
        login_page: str = LOGIN_PAGE,
    ) -> None:
        self.rules: Dict[str, Dict[str, Any]] = dict(rules or {})
        self.login_page = login_page
        self.requests: List[httpx.Request] = []
        self.mutations: List[Dict[str, str]] = []
        self.gateway_body: Any = GATEWAY_INFO
        self.logout_status = 200
        self._next_id = 1

    @staticmethod
    def form(request: httpx.Request) -> Dict[str, str]:
        return dict(parse_qsl(request.content.decode(), keep_blank_values=True))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/cgi-bin/luci" and request.method == "POST":
            return httpx.Response(
                200, text=self.login_page, headers={"set-cookie": f"{SESSION_COOKIE}; path=/"}
            )
        if path == "/cgi-bin/luci/admin/logout":
            return httpx.Response(self.logout_status, text="")
        if path == "/cgi-bin/luci/admin/settings/gwinfo":
            if isinstance(self.gateway_body, str):
                return httpx.Response(200, text=self.gateway_body)
            return httpx.Response(200, json=self.gateway_body)
        if path == "/cgi-bin/luci/admin/settings/pmDisplay":
            body = {"mask": "255.255.255.0", "lanIp": "192.168.1.1", "count": len(self.rules)}
            body.update(self.rules)
            return httpx.Response(200, json=body)
        if path == "/cgi-bin/luci/admin/settings/pmSetSingle":
            return httpx.Response(200, json={"retVal": self._apply(self.form(request))})
        return httpx.Response(404, text="Not Found")

    def _apply(self, form: Dict[str, str]) -> int:
        self.mutations.append(form)
        if form.get("token") != TOKEN:
            return 1
        op = form["op"]
        if op == "add":
            self.rules[f"new{self._next_id}"] = {
                "protocol": form["protocol"],
                "inPort": int(form["inPort"]),
                "enable": 1,
                "desp": form["srvname"],
                "client": form["client"],
                "exPort": int(form["exPort"]),
            }
            self._next_id += 1
            return 0
        for rule_id, rule in self.rules.items():
            if rule["desp"] == form["srvname"]:
                if op == "del":
                    del self.rules[rule_id]
                else:
                    rule["enable"] = 1 if op == "enable" else 0
                return 0
        return 2

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def wire_rule(desp: str, client: str, in_port: int = 80, ex_port: int = 8080,
              protocol: str = "tcp", enable: int = 1) -> Dict[str, Any]:
    """A rule entry as the router serializes it."""
    return {
        "protocol": protocol,
        "inPort": in_port,
        "enable": enable,
        "desp": desp,
        "client": client,
        "exPort": ex_port,
    }


@pytest.fixture
def router() -> FakeRouter:
    """A router holding the single rule from the web server example."""
    return FakeRouter({"rule1": wire_rule("web", "192.168.1.11")})


@pytest.fixture
def client(router: FakeRouter) -> Iterator[TianyiClient]:
    """A client logged in to the fake router."""
    tianyi = (
        TianyiBuilder()
        .password("secret")
        .transport(httpx.MockTransport(router.handler))
        .build()
    )
    yield tianyi
    tianyi.close()
