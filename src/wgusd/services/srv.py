from __future__ import annotations

import logging
from typing import Iterable

import dns.exception
import dns.resolver

from wgusd.enums import LookupFailure
from wgusd.models import Endpoint, ServiceRecord
from wgusd.settings import Settings

_log = logging.getLogger("wgusd.srv")


class EndpointLookupError(RuntimeError):
    def __init__(self, reason: LookupFailure, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class NameserverConfigError(ValueError):
    pass


def srv_query_name(domain: str, *, service: str = "wireguard", proto: str = "udp") -> str:
    return f"_{service}._{proto}.{domain}"


def build_resolver(settings: Settings) -> dns.resolver.Resolver:
    nameservers = [ns.strip() for ns in settings.nameservers if ns.strip()]
    # Explicit nameservers make /etc/resolv.conf irrelevant (and possibly absent in containers).
    resolver = dns.resolver.Resolver(configure=not nameservers)
    if nameservers:
        try:
            resolver.nameservers = nameservers
        except ValueError as exc:
            raise NameserverConfigError(f"invalid nameserver in {nameservers}: {exc}") from exc
    resolver.timeout = settings.dns_timeout_seconds
    resolver.lifetime = settings.dns_timeout_seconds
    return resolver


def query_service_records(
    domain: str,
    resolver: dns.resolver.Resolver,
    *,
    service: str = "wireguard",
    proto: str = "udp",
) -> list[ServiceRecord]:
    qname = srv_query_name(domain, service=service, proto=proto)
    try:
        answers = resolver.resolve(qname, "SRV")
    except dns.resolver.NoAnswer:
        return []
    except dns.exception.DNSException as exc:
        raise EndpointLookupError(LookupFailure.QUERY_FAILED, f"look up SRV record {qname}: {exc}") from exc

    return [
        ServiceRecord(
            priority=int(rdata.priority),
            weight=int(rdata.weight),
            target=rdata.target.to_text(),
            port=int(rdata.port),
        )
        for rdata in answers
    ]


def select_service_record(
    records: Iterable[ServiceRecord],
    *,
    log: logging.Logger | None = None,
) -> ServiceRecord:
    """
    Pick the most preferred record: lowest priority, then highest weight.

    Records that tie on both keep the first one seen, so a source with a stable
    order yields a stable choice.
    """
    log = log or _log
    best: ServiceRecord | None = None
    seen = 0
    for record in records:
        seen += 1
        log.debug(
            "srv_record priority=%s weight=%s port=%s target=%s",
            record.priority,
            record.weight,
            record.port,
            record.target,
        )
        if (
            best is None
            or record.priority < best.priority
            or (record.priority == best.priority and record.weight > best.weight)
        ):
            best = record

    if best is None:
        raise EndpointLookupError(LookupFailure.NO_RECORDS, f"SRV lookup returned {seen} records")

    log.debug(
        "srv_record_preferred priority=%s weight=%s port=%s target=%s",
        best.priority,
        best.weight,
        best.port,
        best.target,
    )
    return best


def endpoint_from_record(record: ServiceRecord) -> Endpoint:
    host = record.target[:-1] if record.target.endswith(".") else record.target
    return Endpoint(host=host, port=record.port)


def resolve_endpoint(
    domain: str,
    *,
    resolver: dns.resolver.Resolver | None = None,
    settings: Settings | None = None,
    log: logging.Logger | None = None,
) -> Endpoint:
    settings = settings or Settings()
    try:
        if resolver is None:
            resolver = build_resolver(settings)
    except (dns.exception.DNSException, ValueError) as exc:
        raise EndpointLookupError(LookupFailure.QUERY_FAILED, f"configure DNS resolver: {exc}") from exc

    records = query_service_records(
        domain,
        resolver,
        service=settings.srv_service,
        proto=settings.srv_proto,
    )
    return endpoint_from_record(select_service_record(records, log=log))
