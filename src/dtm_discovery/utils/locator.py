"""Locator parsing.

A locator is URI-shaped (``scheme://host[:port][/path][?query]``) but the strings
that reach the driver are only loosely RFC compliant: registries append method
paths after the query, pack several hosts into the authority and so on. This
module only rejects what cannot be split into scheme/authority/path/query at all
and otherwise keeps every component verbatim so that a parsed locator can be
reassembled byte for byte.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from dtm_discovery.exceptions import LocatorParseError

__all__ = ["Locator", "parse_locator", "split_host_port"]


@dataclass(frozen=True)
class Locator:
    """A parsed locator."""

    scheme: str
    host: str
    path: str = ""
    raw_query: str = ""
    fragment: str = ""
    userinfo: str = ""

    @property
    def key(self) -> str:
        """Registration key: the path with one leading ``/`` removed."""
        return self.path.removeprefix("/")

    @property
    def hosts(self) -> list[str]:
        return self.host.split(",")

    @property
    def query_params(self) -> dict[str, str]:
        """Query parameters, first value wins."""
        params: dict[str, str] = {}
        for name, value in parse_qsl(self.raw_query, keep_blank_values=True):
            params.setdefault(name, value)
        return params

    def query(self, name: str, default: str = "") -> str:
        return self.query_params.get(name, default)

    def replace(self, **changes: str) -> "Locator":
        return dataclasses.replace(self, **changes)

    @property
    def netloc(self) -> str:
        if self.userinfo:
            return f"{self.userinfo}@{self.host}"
        return self.host

    def geturl(self) -> str:
        return urlunsplit((self.scheme, self.netloc, self.path, self.raw_query, self.fragment))

    def split_host_port(self) -> tuple[str, str]:
        return split_host_port(self.host)

    def __str__(self) -> str:
        return self.geturl()


def split_host_port(hostport: str) -> tuple[str, str]:
    """Split ``host[:port]`` into its parts, keeping IPv6 brackets off the host.

    The port is returned as text and may be empty; validating it is up to the
    caller.
    """
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise LocatorParseError(message=f"missing ']' in host: {hostport!r}")
        host = hostport[1:end]
        rest = hostport[end + 1:]
        if rest and not rest.startswith(":"):
            raise LocatorParseError(message=f"invalid host: {hostport!r}")
        return host, rest[1:]
    host, sep, port = hostport.rpartition(":")
    if not sep:
        return hostport, ""
    return host, port


def _check_port(hostport: str, raw: str) -> None:
    # Only the last host of a comma separated list carries a checked port.
    last = hostport.rsplit(",", 1)[-1]
    if last.startswith("[") and "]" in last:
        last = last[last.index("]") + 1:]
    _, sep, port = last.rpartition(":")
    if sep and port and not (port.isascii() and port.isdigit()):
        raise LocatorParseError(message=f"invalid port {':' + port!r} after host in {raw!r}")


def parse_locator(raw: str) -> Locator:
    """Parse ``raw`` into a :class:`Locator`.

    Raises:
        LocatorParseError: on control characters, a missing scheme, unbalanced
            IPv6 brackets or a non-numeric port.
    """
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in raw):
        raise LocatorParseError(message=f"invalid control character in {raw!r}")
    if raw.startswith(":"):
        raise LocatorParseError(message=f"missing protocol scheme in {raw!r}")
    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise LocatorParseError(message=f"{exc} in {raw!r}", cause=exc) from exc

    userinfo, _, host = parts.netloc.rpartition("@")
    _check_port(host, raw)
    return Locator(
        scheme=parts.scheme,
        host=host,
        path=parts.path,
        raw_query=parts.query,
        fragment=parts.fragment,
        userinfo=userinfo,
    )
