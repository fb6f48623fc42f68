"""Pytest configuration and fixtures for kube-srv-dns tests."""

from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest
from kubernetes import client

from kube_srv_dns.records import HOSTNAME_ANNOTATION, ExistingRecord, HostedZone
from kube_srv_dns.zones import DNSProvider, DNSProviderError, RecordSetPage, ZoneIndex

PortSpec = Tuple[Optional[str], Optional[str], Optional[int]]


def build_service(
    ports: List[PortSpec],
    hostname: Optional[str] = "svc.example.com",
    service_type: str = "NodePort",
    name: str = "web",
    namespace: str = "default",
    annotations: Optional[Dict[str, str]] = None,
) -> client.V1Service:
    if annotations is None:
        annotations = {HOSTNAME_ANNOTATION: hostname} if hostname is not None else {}
    return client.V1Service(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, annotations=annotations),
        spec=client.V1ServiceSpec(
            type=service_type,
            ports=[
                client.V1ServicePort(name=port_name, protocol=protocol, port=80, node_port=node_port)
                for port_name, protocol, node_port in ports
            ],
        ),
    )


@pytest.fixture
def make_service():
    """Factory for V1Service objects: ports are (name, protocol, node_port) tuples."""
    return build_service


# =============================================================================
# Mock DNS Provider
# =============================================================================


class InMemoryDNSProvider(DNSProvider):
    """DNS provider with in-memory zones that applies submitted batches."""

    def __init__(self, zones: List[HostedZone], records: Optional[List[ExistingRecord]] = None):
        self.zones = list(zones)
        self.records: Dict[str, ExistingRecord] = {r.name: r for r in records or []}
        self.batches: List[Tuple[str, List[Dict[str, Any]]]] = []
        self.list_calls = 0
        self.failing_zones: Set[str] = set()
        self.fail_listing = False
        self.on_change: Optional[Callable[[HostedZone], None]] = None

    @property
    def name(self) -> str:
        return "InMemoryDNS"

    def test_connection(self) -> bool:
        return True

    def list_hosted_zones(self) -> List[HostedZone]:
        self.list_calls += 1
        if self.fail_listing:
            raise DNSProviderError("listing hosted zones failed")
        return list(self.zones)

    def list_record_sets(self, zone: HostedZone, cursor: Optional[Any] = None) -> RecordSetPage:
        owned = [r for r in self.records.values() if ZoneIndex.resolve_zone(r.name, [zone])]
        return RecordSetPage(records=owned)

    def change_record_sets(self, zone: HostedZone, changes: List[Dict[str, Any]]) -> str:
        if self.on_change is not None:
            self.on_change(zone)
        if zone.id in self.failing_zones:
            raise DNSProviderError(f"change batch for {zone.name} rejected")
        self.batches.append((zone.id, changes))
        for change in changes:
            rrs = change["ResourceRecordSet"]
            if change["Action"] == "DELETE":
                self.records.pop(rrs["Name"], None)
            else:
                self.records[rrs["Name"]] = ExistingRecord(
                    name=rrs["Name"],
                    type=rrs["Type"],
                    ttl=rrs["TTL"],
                    values=tuple(rr["Value"] for rr in rrs["ResourceRecords"]),
                )
        return f"/change/C{len(self.batches)}"


@pytest.fixture
def make_dns_provider():
    """Factory for InMemoryDNSProvider(zones, records)."""
    return InMemoryDNSProvider
