from __future__ import annotations

import argparse
import logging
import sys
from typing import TextIO

from wgusd.enums import EndpointSource, Outcome
from wgusd.models import Endpoint
from wgusd.observability import configure_logging, write_run_metrics
from wgusd.services.fallback import FallbackConfigError, load_fallback
from wgusd.services.reconcile import ReconcileError, reconcile
from wgusd.services.srv import EndpointLookupError, NameserverConfigError, build_resolver, resolve_endpoint
from wgusd.settings import Settings, get_settings
from wgusd.system import WireguardClient

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wgusd",
        description="Point a WireGuard peer at the endpoint advertised by a DNS SRV record.",
    )
    parser.add_argument("-z", "--zone", help="Zone to query for SRV records (env WGUSD_ZONE)")
    parser.add_argument(
        "-i",
        "--interface",
        dest="iface",
        help="WireGuard interface to (re)configure; omit for a dry-run lookup (env WGUSD_IFACE)",
    )
    parser.add_argument("--fallback", help="Fallback host:port, configured when lookup fails (env WGUSD_FALLBACK)")
    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbosity",
        action="count",
        help="Verbose output (use multiple times to get debug output)",
    )
    parser.add_argument(
        "--nameserver",
        dest="nameservers",
        action="append",
        help="DNS server to query instead of the system resolver (repeatable)",
    )
    parser.add_argument("--dns-timeout", dest="dns_timeout_seconds", type=float, help="DNS lookup lifetime in seconds")
    parser.add_argument(
        "--metrics-textfile",
        help="Write run metrics to this file for the node_exporter textfile collector",
    )
    return parser


def settings_from_args(base: Settings, args: argparse.Namespace) -> Settings:
    overrides = {key: value for key, value in vars(args).items() if value is not None}
    return base.model_copy(update=overrides)


def _record_metrics(
    settings: Settings,
    log: logging.Logger,
    *,
    ok: bool,
    outcome: Outcome | None = None,
    source: EndpointSource | None = None,
    dry_run: bool = False,
) -> None:
    if not settings.metrics_textfile:
        return
    try:
        write_run_metrics(settings.metrics_textfile, ok=ok, outcome=outcome, source=source, dry_run=dry_run)
    except OSError:
        log.exception("metrics_write_failed path=%s", settings.metrics_textfile)


def run(settings: Settings, *, stdout: TextIO | None = None, log: logging.Logger | None = None) -> int:
    stdout = stdout or sys.stdout
    log = log or configure_logging(settings.verbosity)

    zone = settings.zone.strip()
    iface = settings.iface.strip()
    if not zone:
        log.error("no zone specified")
        return EXIT_CONFIG
    if not iface:
        log.info("no wireguard interface specified, performing (dry-run) lookup only")

    # Parsed before any lookup so a bad value never hides behind a working SRV record.
    try:
        fallback = load_fallback(settings.fallback)
    except FallbackConfigError as exc:
        log.error("fallback_invalid reason=%s error=%s", exc.reason.value, exc)
        return EXIT_CONFIG

    if settings.nameservers:
        try:
            build_resolver(settings)
        except NameserverConfigError as exc:
            log.error("nameserver_invalid error=%s", exc)
            return EXIT_CONFIG

    log.info("srv_lookup zone=%s", zone)
    source = EndpointSource.SRV
    try:
        endpoint: Endpoint = resolve_endpoint(zone, settings=settings, log=log)
    except EndpointLookupError as exc:
        log.error("srv_lookup_failed zone=%s reason=%s error=%s", zone, exc.reason.value, exc)
        if fallback is None:
            log.error("no fallback provided")
            _record_metrics(settings, log, ok=False, dry_run=not iface)
            return EXIT_FAILURE
        log.info("using_fallback endpoint=%s", fallback)
        endpoint = fallback
        source = EndpointSource.FALLBACK
    else:
        log.info("srv_lookup_ok zone=%s endpoint=%s", zone, endpoint)

    if not iface:
        stdout.write(f"{endpoint}\n")
        log.info("dry run completed")
        _record_metrics(settings, log, ok=True, source=source, dry_run=True)
        return EXIT_OK

    log.info("reconfiguring interface=%s endpoint=%s", iface, endpoint)
    try:
        outcome = reconcile(
            iface,
            endpoint,
            client_factory=lambda: WireguardClient.open(settings.wg_binary, log=log),
            log=log,
        )
    except ReconcileError as exc:
        log.error(
            "reconcile_failed interface=%s endpoint=%s reason=%s error=%s",
            iface,
            endpoint,
            exc.reason.value,
            exc,
        )
        _record_metrics(settings, log, ok=False, source=source)
        return EXIT_FAILURE

    log.info("reconcile_done interface=%s outcome=%s", iface, outcome.value)
    _record_metrics(settings, log, ok=True, outcome=outcome, source=source)
    return EXIT_OK


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = settings_from_args(get_settings(), args)
    sys.exit(run(settings))


if __name__ == "__main__":
    main()
