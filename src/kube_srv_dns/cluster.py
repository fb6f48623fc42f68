"""Kubernetes service listing and watching."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Tuple

from kubernetes import watch as k8s_watch
from kubernetes.client import CoreV1Api
from kubernetes.client.exceptions import ApiException

logger = logging.getLogger(__name__)

HTTP_GONE = 410


class ServiceEventKind(Enum):
    """Watch notification kinds.

    APPLIED: A service was added or modified.
    DELETED: A service was removed; the event carries its last-known definition.
    RESYNC:  The watch was restarted after its resource version expired.
    """

    APPLIED = "applied"
    DELETED = "deleted"
    RESYNC = "resync"


@dataclass(frozen=True)
class ServiceEvent:
    kind: ServiceEventKind
    service: Any = None


# =============================================================================
# Service Source Interface and Implementations
# =============================================================================


class ServiceSource(ABC):
    """Abstract base class for sources of service definitions."""

    @abstractmethod
    def list_services(self) -> List[Any]:
        """Return the full current set of service definitions."""
        pass

    @abstractmethod
    def watch(self) -> Iterator[ServiceEvent]:
        """Yield service notifications until the stream ends or fails."""
        pass

    def stop(self) -> None:
        """Ask a running watch to end."""
        pass


class KubernetesServiceSource(ServiceSource):
    """Lists and watches core/v1 Services, cluster-wide or in one namespace."""

    def __init__(self, core_v1: CoreV1Api, namespace: str = ""):
        self.core_v1 = core_v1
        self.namespace = namespace
        self._watch = k8s_watch.Watch()
        self._stopped = False
        # Version of the last full list; the watch resumes from it.
        self.resource_version: Optional[str] = None

    def _list_call(self) -> Tuple[Callable[..., Any], tuple]:
        if self.namespace:
            return self.core_v1.list_namespaced_service, (self.namespace,)
        return self.core_v1.list_service_for_all_namespaces, ()

    def _list(self) -> Tuple[List[Any], Optional[str]]:
        func, args = self._list_call()
        result = func(*args)
        items = list(result.items or [])
        resource_version = result.metadata.resource_version if result.metadata else None
        where = f"namespace {self.namespace}" if self.namespace else "all namespaces"
        logger.debug(f"Listed {len(items)} services in {where}")
        return items, resource_version

    def list_services(self) -> List[Any]:
        items, self.resource_version = self._list()
        return items

    def watch(self) -> Iterator[ServiceEvent]:
        """Watch services from the version of the last full list.

        Changes made between the last full sync and the start of the watch
        are therefore still delivered. Without a previous list the services
        are listed first.

        The underlying client re-opens the stream after server-side timeouts.
        When the resource version expires (HTTP 410) the services are relisted
        and a RESYNC marker is yielded before watching resumes.
        """
        func, args = self._list_call()
        resource_version = self.resource_version
        if resource_version is None:
            _, resource_version = self._list()

        while not self._stopped:
            try:
                logger.info(f"Starting watch on services at resource version {resource_version}")
                for event in self._watch.stream(func, *args, resource_version=resource_version):
                    event_type = event["type"]
                    obj = event["object"]

                    if event_type == "ERROR":
                        raw = event.get("raw_object") or {}
                        raise ApiException(
                            status=raw.get("code"),
                            reason=f"{raw.get('reason')}: {raw.get('message')}",
                        )
                    if event_type == "BOOKMARK":
                        continue

                    metadata = getattr(obj, "metadata", None)
                    if metadata is not None and metadata.resource_version:
                        resource_version = metadata.resource_version

                    if event_type in ("ADDED", "MODIFIED"):
                        yield ServiceEvent(ServiceEventKind.APPLIED, obj)
                    elif event_type == "DELETED":
                        yield ServiceEvent(ServiceEventKind.DELETED, obj)
                    else:
                        logger.debug(f"Ignoring unknown watch event type {event_type}")
            except ApiException as e:
                if e.status != HTTP_GONE:
                    logger.error(f"Error watching services: {e}")
                    raise
                logger.warning("Service watch expired, relisting")
                _, resource_version = self._list()
                yield ServiceEvent(ServiceEventKind.RESYNC)
                continue

            logger.info("Service watch stream ended")
            return

    def stop(self) -> None:
        self._stopped = True
        self._watch.stop()
