from __future__ import annotations

import re

from wgusd.enums import ConfigFailure
from wgusd.models import Endpoint

_PORT_RE = re.compile(r"[0-9]+")
_MAX_PORT = 65535


class FallbackConfigError(ValueError):
    def __init__(self, reason: ConfigFailure, message: str) -> None:
        super().__init__(message)
        self.reason = reason


def _split_host_port(value: str) -> tuple[str, str]:
    """
    Split "host:port" or "[v6-host]:port".

    An unbracketed host may not contain a colon; IPv6 literals must be bracketed.
    """
    if value.startswith("["):
        end = value.find("]")
        if end == -1:
            raise FallbackConfigError(ConfigFailure.MALFORMED, f"missing ']' in address {value!r}")
        host = value[1:end]
        rest = value[end + 1 :]
        if not rest.startswith(":"):
            raise FallbackConfigError(ConfigFailure.MALFORMED, f"missing port in address {value!r}")
        port = rest[1:]
        if "[" in host or "]" in host:
            raise FallbackConfigError(ConfigFailure.MALFORMED, f"unexpected bracket in address {value!r}")
    else:
        if ":" not in value:
            raise FallbackConfigError(ConfigFailure.MALFORMED, f"missing port in address {value!r}")
        host, port = value.rsplit(":", 1)
        if ":" in host:
            raise FallbackConfigError(ConfigFailure.MALFORMED, f"too many colons in address {value!r}")
        if "[" in host or "]" in host or "[" in port or "]" in port:
            raise FallbackConfigError(ConfigFailure.MALFORMED, f"unexpected bracket in address {value!r}")
    return host, port


def parse_fallback(spec: str) -> Endpoint:
    host, port_raw = _split_host_port(spec)

    if not _PORT_RE.fullmatch(port_raw):
        raise FallbackConfigError(ConfigFailure.MALFORMED, f"invalid port {port_raw!r} in {spec!r}")
    port = int(port_raw)
    if port > _MAX_PORT:
        raise FallbackConfigError(ConfigFailure.PORT_OUT_OF_RANGE, f"port {port_raw} out of range in {spec!r}")

    if not host:
        raise FallbackConfigError(ConfigFailure.EMPTY_HOST, f"fallback host is empty (endpoint {spec!r})")

    return Endpoint(host=host, port=port)


def load_fallback(value: str | None) -> Endpoint | None:
    """Only an empty or missing value means no fallback is configured."""
    if value is None or value == "":
        return None
    return parse_fallback(value)
