"""China Telecom Tianyi router API client.

The Tianyi gateway has no documented API. Its web UI logs in through a
LuCI form, embeds a session token in the returned page, and talks to a
handful of JSON endpoints under ``/cgi-bin/luci/admin/settings``. This
module reproduces that traffic:

1. POST ``username``/``psd`` to ``/cgi-bin/luci``
2. Extract ``token: '<32 chars>'`` from the response body
3. Reuse the token and the session cookie for every later request

Every request carries a fresh ``_`` parameter (a random float) the same
way the web UI does, so the router never serves a cached response.

Example:
    >>> client = TianyiBuilder().password("secret").build()
    >>> with client:
    ...     print(client.wan_ip())
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_IP = "192.168.1.1"
DEFAULT_USERNAME = "useradmin"
DEFAULT_PASSWORD = ""
DEFAULT_TIMEOUT = 10.0

LOGIN_PATH = "/cgi-bin/luci"
LOGOUT_PATH = "/cgi-bin/luci/admin/logout"
GATEWAY_INFO_PATH = "/cgi-bin/luci/admin/settings/gwinfo"
PORT_FORWARDING_PATH = "/cgi-bin/luci/admin/settings/pmDisplay"
PORT_FORWARDING_SET_PATH = "/cgi-bin/luci/admin/settings/pmSetSingle"

MAX_PORT = 65535

TOKEN_PATTERN = re.compile(r"token: '([a-z0-9]{32})'")

# Query/form field the web UI uses to defeat caching
CACHE_BUSTER_FIELD = "_"


class TianyiError(Exception):
    """Base exception for Tianyi router errors."""

    pass


class TransportError(TianyiError):
    """Raised when an HTTP request to the router fails."""

    pass


class ParseError(TianyiError):
    """Raised when a router response does not have the expected shape."""

    pass


class AuthenticationError(TianyiError):
    """Raised when the login page does not contain a session token."""

    pass


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    if key not in data:
        raise ParseError(f"Missing field in router response: {key}")
    return data[key]


def _as_int(
    data: Any, key: str, low: Optional[int] = None, high: Optional[int] = None
) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ParseError(f"Field {key} is not an integer: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Field {key} is not an integer: {value!r}") from e
    if (low is not None and number < low) or (high is not None and number > high):
        raise ParseError(f"Field {key} out of range [{low}, {high}]: {value!r}")
    return number


def _as_str(data: Any, key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise ParseError(f"Field {key} is not a string: {value!r}")
    return value


# Python attribute -> wire field of the gwinfo response
_GATEWAY_FIELDS = {
    "lan_ip": "LANIP",
    "lan_ipv6": "LANIPv6",
    "mac": "MAC",
    "wan_ip": "WANIP",
    "wan_ipv6": "WANIPv6",
    "product_sn": "ProductSN",
    "dev_type": "DevType",
    "sw_ver": "SWVer",
    "product_cls": "ProductCls",
}


@dataclass(frozen=True)
class GatewayInfo:
    """Gateway information reported by the router."""

    lan_ip: str
    lan_ipv6: str
    mac: str
    wan_ip: str
    wan_ipv6: str
    product_sn: str
    dev_type: str
    sw_ver: str
    product_cls: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GatewayInfo:
        """Build from the gwinfo JSON response.

        Raises:
            ParseError: If a field is missing or not a string.
        """
        return cls(**{attr: _as_str(data, wire) for attr, wire in _GATEWAY_FIELDS.items()})

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary."""
        return dict(self.__dict__)


@dataclass(frozen=True)
class PortForwardingRule:
    """A port forwarding rule.

    The router keys rules by an opaque ID; this client identifies a rule
    by its ``description`` (the ``desp`` / ``srvname`` field).
    """

    protocol: str
    in_port: int
    enable: int
    description: str
    client: str
    ex_port: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PortForwardingRule:
        """Build from one rule entry of the pmDisplay response.

        Raises:
            ParseError: If a field is missing or has the wrong type.
        """
        return cls(
            protocol=_as_str(data, "protocol"),
            in_port=_as_int(data, "inPort", 0, MAX_PORT),
            enable=_as_int(data, "enable", 0, 1),
            description=_as_str(data, "desp"),
            client=_as_str(data, "client"),
            ex_port=_as_int(data, "exPort", 0, MAX_PORT),
        )

    @property
    def enabled(self) -> bool:
        """Check if the rule is enabled."""
        return self.enable == 1

    def with_client(self, client: str) -> PortForwardingRule:
        """Return a copy of this rule forwarding to another LAN address."""
        return replace(self, client=client)

    def to_form(self) -> Dict[str, str]:
        """Rule fields in the pmSetSingle form encoding."""
        return {
            "client": self.client,
            "protocol": self.protocol,
            "exPort": str(self.ex_port),
            "inPort": str(self.in_port),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return dict(self.__dict__)


@dataclass(frozen=True)
class PortForwardingData:
    """Snapshot of the port forwarding page.

    ``rules`` maps the router's rule IDs to rules.
    """

    mask: str
    lan_ip: str
    count: int
    rules: Dict[str, PortForwardingRule]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PortForwardingData:
        """Build from the pmDisplay JSON response.

        Every key other than ``mask``, ``lanIp`` and ``count`` is a rule.

        Raises:
            ParseError: If the header fields or any rule are malformed.
        """
        mask = _as_str(data, "mask")
        lan_ip = _as_str(data, "lanIp")
        count = _as_int(data, "count", 0)
        rules = {
            rule_id: PortForwardingRule.from_dict(entry)
            for rule_id, entry in data.items()
            if rule_id not in ("mask", "lanIp", "count")
        }
        return cls(mask=mask, lan_ip=lan_ip, count=count, rules=rules)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "mask": self.mask,
            "lan_ip": self.lan_ip,
            "count": self.count,
            "rules": {rule_id: rule.to_dict() for rule_id, rule in self.rules.items()},
        }


@dataclass(frozen=True)
class ActionResult:
    """Return code of a rule mutation.

    The meaning of ``ret_val`` is router-defined; it is not interpreted.
    """

    ret_val: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ActionResult:
        """Build from the pmSetSingle JSON response."""
        return cls(ret_val=_as_int(data, "retVal"))

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary."""
        return {"ret_val": self.ret_val}


class PortForwardingAction(str, Enum):
    """Operations accepted by pmSetSingle, valued by their ``op`` token."""

    ADD = "add"
    ENABLE = "enable"
    DISABLE = "disable"
    DELETE = "del"


@dataclass(frozen=True)
class Session:
    """Authenticated router session.

    Attributes:
        base_url: Router URL, e.g. ``http://192.168.1.1``.
        token: Session token scraped from the login page.
        http: HTTP client holding the session cookie jar.
    """

    base_url: str
    token: str
    http: httpx.Client

    def __repr__(self) -> str:
        return f"Session(base_url={self.base_url!r})"


def _cache_buster() -> str:
    return str(random.random())


class TianyiClient:
    """Client for an authenticated Tianyi router session.

    Use :class:`TianyiBuilder` or :meth:`login` to obtain one.

    Attributes:
        session: The session established at login.

    Example:
        >>> client = TianyiClient.login(password="secret")
        >>> for rule in client.get_port_forwarding_rules():
        ...     print(rule.description, rule.client)
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @classmethod
    def login(
        cls,
        ip: str = DEFAULT_IP,
        username: str = DEFAULT_USERNAME,
        password: str = DEFAULT_PASSWORD,
        *,
        proxy: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> TianyiClient:
        """Log in to the router and return a client for the new session.

        Args:
            ip: Router IP address or hostname.
            username: Router admin username.
            password: Router admin password.
            proxy: Optional HTTP proxy URL for all requests.
            timeout: HTTP request timeout in seconds.
            transport: Optional httpx transport (e.g. a mock router).

        Returns:
            Authenticated TianyiClient.

        Raises:
            TransportError: If the login request fails.
            AuthenticationError: If no session token is found in the response.
        """
        base_url = f"http://{ip}"
        http = httpx.Client(timeout=timeout, proxy=proxy, transport=transport)

        try:
            logger.debug("Logging in to %s as %s", base_url, username)
            resp = http.post(
                f"{base_url}{LOGIN_PATH}",
                data={"username": username, "psd": password},
            )
            text = resp.text
        except httpx.HTTPError as e:
            http.close()
            raise TransportError(f"Login request to {base_url} failed: {e}") from e

        match = TOKEN_PATTERN.search(text)
        if not match:
            http.close()
            raise AuthenticationError(
                f"No session token in login response from {base_url} "
                f"(status {resp.status_code}); check username and password"
            )

        logger.info("Login successful: %s", base_url)
        return cls(Session(base_url=base_url, token=match.group(1), http=http))

    @property
    def base_url(self) -> str:
        """Router base URL."""
        return self.session.base_url

    @property
    def token(self) -> str:
        """Session token."""
        return self.session.token

    def __enter__(self) -> TianyiClient:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - closes the HTTP client."""
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client. Does not log out.

        Later requests on this client raise TransportError.
        """
        self.session.http.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self.session.http.is_closed:
            raise TransportError(f"{method} {path} failed: client is closed")
        logger.debug("%s %s", method, path)
        try:
            return self.session.http.request(method, url, params=params, data=data)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ParseError(
                f"Invalid JSON from {resp.request.url.path} (status {resp.status_code})"
            ) from e

    def logout(self) -> None:
        """Log out from the router.

        Raises:
            TransportError: If the request fails or returns a non-2xx status.
        """
        resp = self._request(
            "POST",
            LOGOUT_PATH,
            data={"token": self.token, CACHE_BUSTER_FIELD: _cache_buster()},
        )
        if not resp.is_success:
            raise TransportError(f"Failed to logout: HTTP {resp.status_code}")
        logger.info("Logged out from %s", self.base_url)

    def gateway_info(self) -> GatewayInfo:
        """Get gateway information.

        Raises:
            TransportError: If the request fails.
            ParseError: If the response is not the expected JSON.
        """
        resp = self._request(
            "GET",
            GATEWAY_INFO_PATH,
            params={"get": "part", CACHE_BUSTER_FIELD: _cache_buster()},
        )
        return GatewayInfo.from_dict(self._json(resp))

    def wan_ip(self) -> str:
        """Get the public (WAN) IPv4 address."""
        return self.gateway_info().wan_ip

    def port_forwarding(self) -> PortForwardingData:
        """Get the port forwarding snapshot, including subnet and LAN IP.

        Raises:
            TransportError: If the request fails.
            ParseError: If the response is not the expected JSON.
        """
        resp = self._request(
            "GET",
            PORT_FORWARDING_PATH,
            params={CACHE_BUSTER_FIELD: _cache_buster()},
        )
        return PortForwardingData.from_dict(self._json(resp))

    def get_port_forwarding_rules(self) -> List[PortForwardingRule]:
        """Get all port forwarding rules. Order is not meaningful."""
        return list(self.port_forwarding().rules.values())

    def get_port_forwarding_rule(self, description: str) -> Optional[PortForwardingRule]:
        """Get the first rule with the given description, if any."""
        for rule in self.get_port_forwarding_rules():
            if rule.description == description:
                return rule
        return None

    def set_port_forwarding_rule(
        self,
        action: PortForwardingAction,
        description: str,
        rule: Optional[PortForwardingRule] = None,
    ) -> ActionResult:
        """Apply an action to a port forwarding rule.

        Args:
            action: The operation to perform.
            description: Description (service name) of the rule.
            rule: Rule fields to send along, if any.

        Returns:
            The router's return code, uninterpreted.

        Raises:
            TransportError: If the request fails.
            ParseError: If the response is not the expected JSON.
        """
        payload = {
            "srvname": description,
            "token": self.token,
            "op": PortForwardingAction(action).value,
            CACHE_BUSTER_FIELD: _cache_buster(),
        }
        if rule is not None:
            payload.update(rule.to_form())

        resp = self._request("POST", PORT_FORWARDING_SET_PATH, data=payload)
        result = ActionResult.from_dict(self._json(resp))
        logger.info(
            "Port forwarding %s '%s': retVal=%d", payload["op"], description, result.ret_val
        )
        return result

    def add_port_forwarding_rule(self, rule: PortForwardingRule) -> ActionResult:
        """Add a rule, keyed by its description."""
        return self.set_port_forwarding_rule(PortForwardingAction.ADD, rule.description, rule)

    def delete_port_forwarding_rule(self, rule: PortForwardingRule) -> ActionResult:
        """Delete a rule, keyed by its description."""
        return self.set_port_forwarding_rule(PortForwardingAction.DELETE, rule.description, rule)

    def enable_port_forwarding_rule(
        self, description: str, rule: Optional[PortForwardingRule] = None
    ) -> ActionResult:
        """Enable the rule with the given description."""
        return self.set_port_forwarding_rule(PortForwardingAction.ENABLE, description, rule)

    def disable_port_forwarding_rule(
        self, description: str, rule: Optional[PortForwardingRule] = None
    ) -> ActionResult:
        """Disable the rule with the given description."""
        return self.set_port_forwarding_rule(PortForwardingAction.DISABLE, description, rule)

    def update_port_forwarding_rule(self, old_ip: str, new_ip: str) -> List[PortForwardingRule]:
        """Point every rule forwarding to ``old_ip`` at ``new_ip`` instead.

        All matching rules are deleted first, then re-added with the new
        client address. Nothing is rolled back: if a later request fails,
        the rules deleted so far stay deleted. Return codes are not checked.

        Args:
            old_ip: LAN address the rules currently forward to.
            new_ip: LAN address to forward to.

        Returns:
            The rules as re-added (empty if nothing matched).

        Raises:
            TransportError: If any request fails.
            ParseError: If any response is not the expected JSON.
        """
        updated_rules: List[PortForwardingRule] = []
        for rule in self.get_port_forwarding_rules():
            if rule.client == old_ip:
                updated_rules.append(rule.with_client(new_ip))
                self.delete_port_forwarding_rule(rule)

        for updated_rule in updated_rules:
            self.add_port_forwarding_rule(updated_rule)

        logger.info(
            "Moved %d port forwarding rule(s) from %s to %s", len(updated_rules), old_ip, new_ip
        )
        return updated_rules


class TianyiBuilder:
    """Builder for :class:`TianyiClient`.

    Example:
        >>> client = (
        ...     TianyiBuilder()
        ...     .ip("192.168.1.1")
        ...     .username("useradmin")
        ...     .password("secret")
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self._ip = DEFAULT_IP
        self._username = DEFAULT_USERNAME
        self._password = DEFAULT_PASSWORD
        self._proxy: Optional[str] = None
        self._timeout = DEFAULT_TIMEOUT
        self._transport: Optional[httpx.BaseTransport] = None

    def ip(self, ip: str) -> TianyiBuilder:
        """Set the router address."""
        self._ip = ip
        return self

    def username(self, username: str) -> TianyiBuilder:
        """Set the login name."""
        self._username = username
        return self

    def password(self, password: str) -> TianyiBuilder:
        """Set the login password."""
        self._password = password
        return self

    def proxy(self, proxy: Optional[str]) -> TianyiBuilder:
        """Route all requests through an HTTP proxy."""
        self._proxy = proxy
        return self

    def timeout(self, timeout: float) -> TianyiBuilder:
        """Set the HTTP timeout in seconds."""
        self._timeout = timeout
        return self

    def transport(self, transport: Optional[httpx.BaseTransport]) -> TianyiBuilder:
        """Use a custom httpx transport."""
        self._transport = transport
        return self

    def build(self) -> TianyiClient:
        """Log in and return the client.

        Raises:
            TransportError: If the login request fails.
            AuthenticationError: If the router rejects the credentials.
        """
        return TianyiClient.login(
            self._ip,
            self._username,
            self._password,
            proxy=self._proxy,
            timeout=self._timeout,
            transport=self._transport,
        )
