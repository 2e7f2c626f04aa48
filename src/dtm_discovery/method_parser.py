"""Splitting a combined ``locator + method`` target.

The call-routing layer glues an RPC method path onto the server locator without a
common separator convention, and every registry mangles the result differently::

    consul://127.0.0.1:8500/grpc-product?tag=grpc_q/product.Product/Deduct
    consul://localhost:8500/my-api-gateway/hello.World/Say
    nacos://127.0.0.1:8848/svc?namespaceId=ns/pkg.Svc/Method
    etcd://localhost:2379/my-key/hello.World/Say
    127.0.0.1:2001/hello.World/Say

A generic URI parse gets most of these wrong (a method after the query ends up
inside the query), so the registry that produced the string is detected first,
by keyword or, preferably, by an explicit :class:`RegistryKind`.
"""

from __future__ import annotations

import logging

from dtm_discovery.exceptions import MissingMethodError, UnknownSchemeError
from dtm_discovery.utils.constant import RegistryKind
from dtm_discovery.utils.locator import parse_locator

__all__ = [
    "fold_trailing_query",
    "parse_server_method",
    "split_catalog_target",
    "split_generic_target",
    "split_schemeless_target",
]

logger = logging.getLogger(__name__)


def split_catalog_target(target: str) -> tuple[str, str]:
    """Split a consul target.

    With a query the method follows the first ``/`` inside the query; without one
    it follows the first path segment (the service key).
    """
    locator = parse_locator(target)
    method = ""
    if locator.raw_query:
        query, sep, method = locator.raw_query.partition("/")
        if sep:
            locator = locator.replace(raw_query=query)
    else:
        path = locator.path
        if not path.startswith("/"):
            raise MissingMethodError(message="invalid path", data={"target": target})
        key, sep, method = path[1:].partition("/")
        if sep:
            locator = locator.replace(path=f"/{key}")

    if not method:
        raise MissingMethodError(data={"target": target})
    return locator.geturl(), method


def split_schemeless_target(target: str) -> tuple[str, str]:
    """Split ``host:port/pkg.Svc/Method`` at the first ``/``; the method keeps it."""
    sep = target.find("/")
    if sep < 0:
        raise MissingMethodError(message=f"bad url: '{target}'. no '/' found", data={"target": target})
    return target[:sep], target[sep:]


def fold_trailing_query(target: str) -> str:
    """Drop the query of a target whose method was appended after it.

    ``nacos://h/svc?namespaceId=ns/pkg.Svc/Method`` becomes
    ``nacos://h/svc/pkg.Svc/Method``.
    """
    parts = target.split("?")
    prefix, rest = parts[0], parts[1]
    sep = rest.find("/")
    if sep < 0:
        raise MissingMethodError(message=f"bad url: '{target}'. no '/' found", data={"target": target})
    return prefix + rest[sep:]


def split_generic_target(target: str) -> tuple[str, str]:
    """Split ``scheme://host/key/pkg.Svc/Method`` after the key.

    The method keeps its leading ``/``; query and fragment are not part of the
    returned locator.
    """
    locator = parse_locator(target)
    path = locator.path
    index = path.find("/", 1) if path.startswith("/") else -1
    if index < 0 or index == len(path) - 1:
        raise MissingMethodError(data={"target": target})
    return f"{locator.scheme}://{locator.host}{path[:index]}", path[index:]


def _detect(target: str) -> tuple[str, str]:
    # consul must come first: a generic parse would leave the method in the query.
    if RegistryKind.CONSUL.value in target:
        return split_catalog_target(target)
    if "//" not in target:
        return split_schemeless_target(target)
    if (RegistryKind.CONSUL.value in target or RegistryKind.NACOS.value in target) and "?" in target:
        target = fold_trailing_query(target)
    return split_generic_target(target)


def parse_server_method(target: str, kind: RegistryKind | str | None = None) -> tuple[str, str]:
    """Split ``target`` into ``(server locator, method path)``.

    Args:
        target: The combined string.
        kind: The registry that produced ``target``. When omitted it is guessed
            from keywords in the string.

    Raises:
        LocatorParseError: when the target is not a parseable URI.
        MissingMethodError: when no method path can be recovered.
        UnknownSchemeError: when ``kind`` names no supported registry.
    """
    if kind is None:
        server, method = _detect(target)
    else:
        try:
            kind = RegistryKind(kind)
        except ValueError as exc:
            raise UnknownSchemeError(
                message=f"unknown scheme: {kind}", data={"kind": str(kind)}, cause=exc
            ) from exc
        if kind is RegistryKind.CONSUL:
            server, method = split_catalog_target(target)
        elif "//" not in target:
            server, method = split_schemeless_target(target)
        else:
            if kind is RegistryKind.NACOS and "?" in target:
                target = fold_trailing_query(target)
            server, method = split_generic_target(target)
    logger.debug("Split %s into server=%s method=%s", target, server, method)
    return server, method
