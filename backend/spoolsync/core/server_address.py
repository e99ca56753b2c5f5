"""Server Address - parsing of user-entered server addresses into endpoint URLs.

Invariants:
    - Scheme defaults to http; trailing slashes are dropped
    - Bracketed IPv6 hosts keep their brackets; the port follows the closing bracket
    - Candidate controller URLs are unique and ordered: explicit port, default port, bare host
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

INVENTORY_DEFAULT_PORT = 7912
CONTROLLER_DEFAULT_PORT = 7125
API_PATH = "/api/v1/"


@dataclass(frozen=True)
class ServerAddress:
    scheme: str = "http"
    host: str = ""
    port: str = ""

    @property
    def has_port(self) -> bool:
        return bool(self.port)

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"


def parse_server_address(address: str) -> ServerAddress:
    address = (address or "").strip()
    scheme = "http"
    if "://" in address:
        scheme, address = address.split("://", 1)
        scheme = scheme.lower() or "http"
    address = address.rstrip("/")
    if not address:
        return ServerAddress(scheme=scheme)

    if address.startswith("["):
        closing = address.find("]")
        if closing != -1:
            host = address[:closing + 1]
            rest = address[closing + 1:]
            port = rest[1:] if rest.startswith(":") else ""
            return ServerAddress(scheme, host, port)

    host, sep, port = address.rpartition(":")
    # a single colon with something after it; more colons means a bare IPv6 address
    if sep and port and ":" not in host:
        return ServerAddress(scheme, host, port)
    return ServerAddress(scheme, address, "")


def _port_or_default(address: ServerAddress, default_port: int) -> int:
    if not address.has_port:
        return default_port
    if address.port.isdigit():
        return int(address.port)
    logger.error(
        f"Failed to parse port from server address. Host: {address.host}, Port: {address.port}",
    )
    return default_port


def inventory_api_url(address: str, default_port: int = INVENTORY_DEFAULT_PORT) -> str:
    """Base URL of the inventory REST API, e.g. 'http://host:7912/api/v1/'."""
    parsed = parse_server_address(address)
    port = _port_or_default(parsed, default_port)
    return f"{parsed.scheme}://{parsed.host}:{port}{API_PATH}"


def push_endpoint(
    address: str, default_port: int = INVENTORY_DEFAULT_PORT,
) -> tuple[str, int, str, bool]:
    """(host, port, path, secure) of the inventory change feed."""
    parsed = parse_server_address(address)
    return parsed.host, _port_or_default(parsed, default_port), API_PATH, parsed.is_secure


def controller_candidate_urls(
    address: str, default_port: int = CONTROLLER_DEFAULT_PORT,
) -> list[str]:
    """Base URLs to try, in order, for the lane controller."""
    parsed = parse_server_address(address)
    if not parsed.host:
        return []

    urls: list[str] = []

    def add(port: str) -> None:
        url = f"{parsed.scheme}://{parsed.host}"
        if port:
            url += f":{port}"
        url += "/"
        if url not in urls:
            urls.append(url)

    if parsed.has_port:
        add(parsed.port)
    add(str(default_port))
    if not parsed.has_port or parsed.port not in ("80", "443"):
        add("")
    return urls
