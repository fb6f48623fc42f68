"""Record model and derivation of SRV records from Kubernetes services.

A NodePort service annotated with a base hostname publishes one SRV record per
well-formed port:

    _{port name}._{protocol}.{hostname}  SRV  0 10 {node port} {hostname}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

HOSTNAME_ANNOTATION = "external-dns.alpha.kubernetes.io/hostname"
ELIGIBLE_SERVICE_TYPE = "NodePort"

SRV_PRIORITY = 0
SRV_WEIGHT = 10
DEFAULT_TTL = 1800

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ServiceRecord:
    """Desired SRV record for one port of a NodePort service."""

    hostname: str
    name: str
    protocol: str
    port: int

    def __post_init__(self) -> None:
        for attr in ("hostname", "name", "protocol", "port"):
            if not getattr(self, attr):
                raise ValueError(f"ServiceRecord.{attr} must not be empty")

    @property
    def record_name(self) -> str:
        return f"_{self.name}._{self.protocol.lower()}.{self.hostname}"

    @property
    def record_value(self) -> str:
        return f"{SRV_PRIORITY} {SRV_WEIGHT} {self.port} {self.hostname}"

    def to_record_set(self, ttl: int = DEFAULT_TTL) -> Dict[str, Any]:
        """Route53 ResourceRecordSet carrying only this record's value."""
        return {
            "Name": self.record_name,
            "Type": "SRV",
            "TTL": ttl,
            "ResourceRecords": [{"Value": self.record_value}],
        }


@dataclass(frozen=True)
class ExistingRecord:
    """Provider-side record set, as fetched during the current pass."""

    name: str
    type: str
    ttl: Optional[int] = None
    values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HostedZone:
    """Authoritative DNS partition; ``name`` has no trailing dot."""

    id: str
    name: str


class ChangeAction(Enum):
    UPSERT = "UPSERT"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Change:
    action: ChangeAction
    record: ServiceRecord

    @property
    def target_name(self) -> str:
        return self.record.record_name

    @property
    def target_value(self) -> str:
        return self.record.record_value

    def to_wire(self, ttl: int = DEFAULT_TTL) -> Dict[str, Any]:
        return {
            "Action": self.action.value,
            "ResourceRecordSet": self.record.to_record_set(ttl),
        }


@dataclass(frozen=True)
class ChangeBatch:
    """All changes routed to one hosted zone; submitted atomically."""

    zone: HostedZone
    changes: Tuple[Change, ...] = field(default_factory=tuple)


# =============================================================================
# Derivation
# =============================================================================


def service_key(service: Any) -> str:
    """Return ``namespace/name`` for log messages."""
    metadata = getattr(service, "metadata", None)
    namespace = getattr(metadata, "namespace", None) or "<no namespace>"
    name = getattr(metadata, "name", None) or "<no name>"
    return f"{namespace}/{name}"


def derive_records(
    service: Any,
    *,
    annotation: str = HOSTNAME_ANNOTATION,
    service_type: str = ELIGIBLE_SERVICE_TYPE,
) -> List[ServiceRecord]:
    """Derive the desired SRV records of a service.

    Ineligible services yield an empty list. Ports missing a name, protocol or
    node port are skipped individually; their siblings are still derived.
    """
    key = service_key(service)
    metadata = getattr(service, "metadata", None)
    spec = getattr(service, "spec", None)
    if metadata is None or spec is None:
        logger.debug(f"Service {key} has no metadata or spec, ignoring")
        return []

    if getattr(spec, "type", None) != service_type:
        logger.debug(f"Service {key} is not a {service_type} service, ignoring")
        return []

    annotations = getattr(metadata, "annotations", None) or {}
    hostname = str(annotations.get(annotation) or "").strip()
    if not hostname:
        logger.debug(f"{service_type} service {key} has no '{annotation}' annotation, ignoring")
        return []

    records: List[ServiceRecord] = []
    for index, port in enumerate(getattr(spec, "ports", None) or []):
        name = getattr(port, "name", None)
        protocol = getattr(port, "protocol", None)
        node_port = getattr(port, "node_port", None)
        if not name:
            logger.debug(f"Service {key} port {index} has no name, ignoring it")
            continue
        if not protocol:
            logger.debug(f"Service {key} port {index} has no protocol, ignoring it")
            continue
        if not node_port:
            logger.debug(f"Service {key} port {index} has no node port, ignoring it")
            continue

        record = ServiceRecord(hostname=hostname, name=name, protocol=protocol, port=int(node_port))
        logger.debug(f"Discovered service record {record.record_name} -> {record.record_value}")
        records.append(record)

    return records
