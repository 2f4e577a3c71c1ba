from __future__ import annotations

import logging
import time

from prometheus_client import CollectorRegistry, Gauge, write_to_textfile

from wgusd.enums import EndpointSource, Outcome

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def verbosity_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int, *, name: str = "wgusd") -> logging.Logger:
    """
    Build the run logger. Components receive it explicitly instead of
    consulting a process-wide level.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(verbosity_level(verbosity))
    return logger


def write_run_metrics(
    path: str,
    *,
    ok: bool,
    outcome: Outcome | None = None,
    source: EndpointSource | None = None,
    dry_run: bool = False,
) -> None:
    """
    Write the result of one run for the node_exporter textfile collector.

    The file is rewritten atomically by prometheus_client on every run; a stale
    `wgusd_last_run_timestamp_seconds` is the signal that the timer stopped firing.
    """
    registry = CollectorRegistry()
    Gauge(
        "wgusd_last_run_timestamp_seconds",
        "Unix time of the last wgusd run",
        registry=registry,
    ).set(time.time())
    Gauge(
        "wgusd_last_run_success",
        "1 if the last wgusd run completed without a fatal error",
        registry=registry,
    ).set(1 if ok else 0)
    Gauge(
        "wgusd_dry_run",
        "1 if the last run only resolved the endpoint",
        registry=registry,
    ).set(1 if dry_run else 0)

    fallback_used = Gauge(
        "wgusd_fallback_used",
        "1 if the last run used the static fallback endpoint",
        registry=registry,
    )
    fallback_used.set(1 if source == EndpointSource.FALLBACK else 0)

    outcome_gauge = Gauge(
        "wgusd_last_outcome",
        "Outcome of the last reconcile (1 for the outcome that occurred)",
        labelnames=["outcome"],
        registry=registry,
    )
    for row in Outcome:
        outcome_gauge.labels(row.value).set(1 if row == outcome else 0)

    write_to_textfile(path, registry)
