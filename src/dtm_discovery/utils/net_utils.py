from __future__ import annotations

import logging
import socket

from dtm_discovery.exceptions import InvalidLocatorError
from dtm_discovery.utils.constant import WILDCARD_HOSTS
from dtm_discovery.utils.locator import split_host_port

logger = logging.getLogger(__name__)


class NetUtils:
    """Helpers for turning listen addresses into published addresses."""

    @staticmethod
    def internal_ip() -> str:
        """Best guess at the address other hosts can reach us on."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            # No packet is sent; connect() only selects the outgoing interface.
            sock.connect(("10.255.255.255", 1))
            return sock.getsockname()[0]
        except OSError:
            logger.warning("Could not determine internal IP, falling back to 127.0.0.1")
            return "127.0.0.1"
        finally:
            sock.close()

    @staticmethod
    def figure_out_listen_on(endpoint: str) -> str:
        """Replace a wildcard host in ``endpoint`` with the internal IP."""
        host, port = split_host_port(endpoint)
        if host not in WILDCARD_HOSTS:
            return endpoint
        return f"{NetUtils.internal_ip()}:{port}"

    @staticmethod
    def endpoint_host_port(endpoint: str) -> tuple[str, int]:
        host, port = split_host_port(NetUtils.figure_out_listen_on(endpoint))
        if not (port.isascii() and port.isdigit()) or int(port) > 65535:
            raise InvalidLocatorError(message=f"invalid endpoint port in {endpoint!r}")
        return host, int(port)
