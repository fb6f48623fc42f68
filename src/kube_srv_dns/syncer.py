"""Reconciliation loop: initial full sync, then one pass per watch event."""

from __future__ import annotations

import logging
import queue
import re
import threading
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from .cluster import ServiceEvent, ServiceEventKind, ServiceSource
from .records import HOSTNAME_ANNOTATION, ServiceRecord, derive_records, service_key
from .reconciler import ApplyResult, ChangeApplier, ChangeSubmissionError, deletions, reconcile
from .utils import _is_domain_excluded
from .zones import DNSProviderError, ZoneIndex

logger = logging.getLogger(__name__)

# Queue items that are not service events.
_WAKE = object()
_WATCH_ENDED = object()


class SyncerState(Enum):
    INIT = "init"
    INITIAL_SYNC = "initial_sync"
    WATCHING = "watching"
    SHUTDOWN = "shutdown"


class SRVRecordSyncer:
    """Keeps Route53 SRV records in line with NodePort services.

    Every pass re-derives desired records and re-fetches zone state; nothing
    but the watch stream survives between passes. Passes run one at a time on
    the thread calling :meth:`run`. A background thread only forwards watch
    events into a queue, so waiting for the next event and waiting for a
    shutdown request are the same blocking ``get``.
    """

    def __init__(
        self,
        *,
        service_source: ServiceSource,
        zone_index: ZoneIndex,
        applier: ChangeApplier,
        annotation: str = HOSTNAME_ANNOTATION,
        exclude_patterns: Optional[Sequence[re.Pattern]] = None,
        resync_interval: float = 0,
    ):
        self.service_source = service_source
        self.zone_index = zone_index
        self.applier = applier
        self.annotation = annotation
        self.exclude_patterns = list(exclude_patterns or [])
        self.resync_interval = resync_interval
        self.state = SyncerState.INIT
        # Filled from signal handlers too; put must be reentrant.
        self._queue: "queue.SimpleQueue[Any]" = queue.SimpleQueue()
        self._shutdown = threading.Event()

    def _derive(self, service: Any) -> List[ServiceRecord]:
        records = derive_records(service, annotation=self.annotation)
        kept = []
        for record in records:
            if _is_domain_excluded(record.hostname, self.exclude_patterns):
                logger.debug(f"Excluding {record.record_name} (matches exclusion pattern)")
                continue
            kept.append(record)
        return kept

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    def sync_all(self) -> ApplyResult:
        """Full pass over every service."""
        services = self.service_source.list_services()
        desired = [record for service in services for record in self._derive(service)]
        logger.info(f"Derived {len(desired)} SRV record(s) from {len(services)} service(s)")

        zones = self.zone_index.list_zones()
        existing = self.zone_index.list_records(zones)
        changes = reconcile(desired, existing)
        if not changes:
            logger.info("No changes required - SRV records are up to date")
            return ApplyResult()
        return self.applier.apply(changes, zones)

    def sync_service(self, service: Any) -> ApplyResult:
        desired = self._derive(service)
        if not desired:
            return ApplyResult()

        zones = self.zone_index.list_zones()
        existing = self.zone_index.list_records(zones)
        changes = reconcile(desired, existing)
        if not changes:
            logger.debug(f"Service {service_key(service)} is up to date")
            return ApplyResult()
        return self.applier.apply(changes, zones)

    def remove_service(self, service: Any) -> ApplyResult:
        # No ownership tracking: whatever the last-known definition derives is deleted.
        changes = deletions(self._derive(service))
        if not changes:
            return ApplyResult()

        zones = self.zone_index.list_zones()
        return self.applier.apply(changes, zones)

    def handle_event(self, event: ServiceEvent) -> Optional[ApplyResult]:
        if event.kind == ServiceEventKind.APPLIED:
            logger.debug(f"Service {service_key(event.service)} changed")
            return self.sync_service(event.service)
        if event.kind == ServiceEventKind.DELETED:
            logger.info(f"Service {service_key(event.service)} removed")
            return self.remove_service(event.service)
        logger.warning("Service watch resynchronized; no full resync performed")
        return None

    def _run_pass(self, label: str, func: Callable[..., Any], *args: Any) -> Optional[Any]:
        """Run one pass; provider and cluster errors end the pass, not the loop."""
        try:
            return func(*args)
        except (DNSProviderError, ChangeSubmissionError, ApiException, HTTPError) as e:
            logger.error(f"{label} failed: {e}")
            return None

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Stop after the current pass; safe to call from a signal handler."""
        self._shutdown.set()
        self._queue.put(_WAKE)

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def _pump_events(self) -> None:
        try:
            for event in self.service_source.watch():
                self._queue.put(event)
                if self._shutdown.is_set():
                    return
        except Exception as e:
            self._queue.put(e)
            return
        self._queue.put(_WATCH_ENDED)

    def run(self) -> None:
        self.state = SyncerState.INITIAL_SYNC
        logger.info("Running initial sync")
        self._run_pass("Initial sync", self.sync_all)
        if self._shutdown.is_set():
            logger.info("Termination requested, shutting down")
            self.state = SyncerState.SHUTDOWN
            return

        self.state = SyncerState.WATCHING
        pump = threading.Thread(target=self._pump_events, name="service-watch", daemon=True)
        pump.start()
        timeout = self.resync_interval if self.resync_interval > 0 else None

        try:
            while True:
                try:
                    item = self._queue.get(timeout=timeout)
                except queue.Empty:
                    logger.info("Running periodic resync")
                    self._run_pass("Periodic resync", self.sync_all)
                    continue

                if self._shutdown.is_set():
                    logger.info("Termination requested, shutting down")
                    break
                if item is _WATCH_ENDED:
                    logger.info("Service watch ended, shutting down")
                    break
                if isinstance(item, Exception):
                    logger.error(f"Service watch failed, shutting down: {item}")
                    break
                if item is _WAKE:
                    continue

                self._run_pass(f"{item.kind.value} pass", self.handle_event, item)
        finally:
            self.state = SyncerState.SHUTDOWN
            self.service_source.stop()
