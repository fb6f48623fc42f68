"""DNS provider access: hosted zones, record sets and change submission."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from .records import ExistingRecord, HostedZone

logger = logging.getLogger(__name__)


class DNSProviderError(Exception):
    """A provider call failed; the current pass must not continue on stale data."""


def normalize_name(name: str) -> str:
    """Strip the root dot and decode Route53's octal escape for ``*``."""
    return name.replace("\\052", "*").rstrip(".")


@dataclass(frozen=True)
class RecordSetPage:
    """One page of record sets; ``next_cursor`` is opaque and ``None`` at the end."""

    records: List[ExistingRecord] = field(default_factory=list)
    next_cursor: Optional[Any] = None


# =============================================================================
# DNS Provider Interface and Implementations
# =============================================================================


class DNSProvider(ABC):
    """Abstract base class for DNS providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the DNS provider."""
        pass

    @abstractmethod
    def list_hosted_zones(self) -> List[HostedZone]:
        """Return every hosted zone, draining pagination."""
        pass

    @abstractmethod
    def list_record_sets(self, zone: HostedZone, cursor: Optional[Any] = None) -> RecordSetPage:
        """Return one page of record sets of ``zone`` starting at ``cursor``."""
        pass

    @abstractmethod
    def change_record_sets(self, zone: HostedZone, changes: List[Dict[str, Any]]) -> str:
        """Submit one atomic change batch to ``zone``; returns the change id."""
        pass


class Route53DNSProvider(DNSProvider):
    """AWS Route53 DNS provider implementation."""

    def __init__(self, client: Any, comment: str = "kube-srv-dns"):
        self._client = client
        self._comment = comment

    @property
    def name(self) -> str:
        return "Route53"

    def test_connection(self) -> bool:
        try:
            self._client.get_hosted_zone_count()
            logger.info(f"{self.name} connection successful")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def list_hosted_zones(self) -> List[HostedZone]:
        zones: List[HostedZone] = []
        try:
            paginator = self._client.get_paginator("list_hosted_zones")
            for page in paginator.paginate():
                for hz in page.get("HostedZones", []):
                    zones.append(HostedZone(id=hz["Id"], name=normalize_name(hz["Name"]).lower()))
        except (BotoCoreError, ClientError) as e:
            raise DNSProviderError(f"Failed to list hosted zones: {e}") from e
        return zones

    def list_record_sets(self, zone: HostedZone, cursor: Optional[Any] = None) -> RecordSetPage:
        params: Dict[str, Any] = {"HostedZoneId": zone.id}
        if cursor:
            params.update(cursor)
        try:
            response = self._client.list_resource_record_sets(**params)
        except (BotoCoreError, ClientError) as e:
            raise DNSProviderError(f"Failed to list record sets of {zone.name}: {e}") from e

        records = [
            ExistingRecord(
                name=normalize_name(rrs["Name"]),
                type=rrs["Type"],
                ttl=rrs.get("TTL"),
                values=tuple(rr["Value"] for rr in rrs.get("ResourceRecords", [])),
            )
            for rrs in response.get("ResourceRecordSets", [])
        ]

        next_cursor: Optional[Dict[str, str]] = None
        if response.get("IsTruncated"):
            next_cursor = {"StartRecordName": response["NextRecordName"]}
            if response.get("NextRecordType"):
                next_cursor["StartRecordType"] = response["NextRecordType"]
            if response.get("NextRecordIdentifier"):
                next_cursor["StartRecordIdentifier"] = response["NextRecordIdentifier"]
        return RecordSetPage(records=records, next_cursor=next_cursor)

    def change_record_sets(self, zone: HostedZone, changes: List[Dict[str, Any]]) -> str:
        try:
            response = self._client.change_resource_record_sets(
                HostedZoneId=zone.id,
                ChangeBatch={"Comment": self._comment, "Changes": changes},
            )
        except (BotoCoreError, ClientError) as e:
            raise DNSProviderError(f"Failed to change record sets of {zone.name}: {e}") from e
        return response["ChangeInfo"]["Id"]


# =============================================================================
# Zone Index
# =============================================================================


class ZoneIndex:
    """Read-only view of authoritative zone state, re-fetched on every call."""

    def __init__(self, provider: DNSProvider, zone_filter: Iterable[str] = ()):
        self.provider = provider
        self.zone_filter = {normalize_name(z).lower() for z in zone_filter if z}

    def list_zones(self) -> List[HostedZone]:
        zones = self.provider.list_hosted_zones()
        if self.zone_filter:
            zones = [z for z in zones if z.name in self.zone_filter]
        logger.debug(f"Discovered {len(zones)} hosted zones")
        return zones

    def list_records(self, zones: Optional[Sequence[HostedZone]] = None) -> List[ExistingRecord]:
        if zones is None:
            zones = self.list_zones()

        all_records: List[ExistingRecord] = []
        for zone in zones:
            logger.debug(f"Iterating over records for {zone.name} ({zone.id})")
            page = self.provider.list_record_sets(zone)
            all_records.extend(page.records)
            while page.next_cursor is not None:
                logger.debug(f"Record set listing truncated, continuing at {page.next_cursor}")
                page = self.provider.list_record_sets(zone, page.next_cursor)
                all_records.extend(page.records)

        logger.debug(f"Found {len(all_records)} records across {len(zones)} zones")
        return all_records

    @staticmethod
    def resolve_zone(hostname: str, zones: Sequence[HostedZone]) -> Optional[HostedZone]:
        """Return the zone with the longest suffix owning ``hostname``."""
        host = normalize_name(hostname).lower()
        best: Optional[HostedZone] = None
        for zone in zones:
            suffix = normalize_name(zone.name).lower()
            if host != suffix and not host.endswith("." + suffix):
                continue
            if best is None or len(suffix) > len(normalize_name(best.name)):
                best = zone
        return best
