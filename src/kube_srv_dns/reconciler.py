"""Diffing desired SRV records against zone state and submitting the result."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .records import (
    DEFAULT_TTL,
    Change,
    ChangeAction,
    ChangeBatch,
    ExistingRecord,
    HostedZone,
    ServiceRecord,
)
from .zones import DNSProvider, DNSProviderError, ZoneIndex, normalize_name

logger = logging.getLogger(__name__)

# =============================================================================
# Diff
# =============================================================================


def _name_key(name: str) -> str:
    return normalize_name(name).lower()


def _value_key(value: str) -> str:
    return value.rstrip(".").lower()


def reconcile(desired: Iterable[ServiceRecord], existing: Sequence[ExistingRecord]) -> List[Change]:
    """Return the UPSERTs needed to make ``existing`` contain every desired record.

    A record set that exists but lacks the desired value is replaced with the
    desired value only. Names not derived from ``desired`` are never touched.
    Names and values compare as DNS does: case-insensitive, root dot optional.
    """
    by_name: Dict[str, ExistingRecord] = {}
    for record in existing:
        by_name.setdefault(_name_key(record.name), record)

    changes: List[Change] = []
    for record in desired:
        current = by_name.get(_name_key(record.record_name))
        if current is None:
            logger.debug(
                f"Record {record.record_name} not found in any hosted zone, "
                f"creating as '{record.record_value}'"
            )
            changes.append(Change(ChangeAction.UPSERT, record))
        elif _value_key(record.record_value) not in {_value_key(v) for v in current.values}:
            logger.debug(
                f"Record {record.record_name} does not match desired state, upsert. "
                f"desired: '{record.record_value}', actual: {list(current.values)}"
            )
            changes.append(Change(ChangeAction.UPSERT, record))
        else:
            logger.debug(f"Record {record.record_name} already matches '{record.record_value}'")
    return changes


def deletions(records: Iterable[ServiceRecord]) -> List[Change]:
    """One DELETE per record, regardless of what the zones currently hold."""
    return [Change(ChangeAction.DELETE, record) for record in records]


# =============================================================================
# Change Submission
# =============================================================================


@dataclass
class ApplyResult:
    submitted: List[ChangeBatch] = field(default_factory=list)
    unrouted: List[Change] = field(default_factory=list)
    failed: List[Tuple[ChangeBatch, Exception]] = field(default_factory=list)


class ChangeSubmissionError(Exception):
    """One or more zone batches could not be submitted."""

    def __init__(self, message: str, result: ApplyResult):
        super().__init__(message)
        self.result = result


class ChangeApplier:
    """Routes changes to their hosted zones and submits one batch per zone."""

    def __init__(
        self,
        provider: DNSProvider,
        *,
        ttl: int = DEFAULT_TTL,
        dry_run: bool = False,
        continue_on_error: bool = False,
    ):
        self.provider = provider
        self.ttl = ttl
        self.dry_run = dry_run
        self.continue_on_error = continue_on_error

    def group_by_zone(
        self, changes: Iterable[Change], zones: Sequence[HostedZone]
    ) -> Tuple[List[ChangeBatch], List[Change]]:
        grouped: Dict[str, List[Change]] = {}
        zone_by_id: Dict[str, HostedZone] = {}
        unrouted: List[Change] = []
        seen: Dict[str, Change] = {}
        for change in changes:
            # Route53 rejects a batch that names the same record set twice.
            key = _name_key(change.target_name)
            if key in seen:
                logger.warning(
                    f"Duplicate {change.action.value} for {change.target_name} -> {change.target_value} "
                    f"dropped, keeping '{seen[key].target_value}'"
                )
                continue
            seen[key] = change

            zone: Optional[HostedZone] = ZoneIndex.resolve_zone(change.target_name, zones)
            if zone is None:
                logger.error(f"No hosted zone found for {change.target_name}, dropping {change.action.value}")
                unrouted.append(change)
                continue
            zone_by_id[zone.id] = zone
            grouped.setdefault(zone.id, []).append(change)

        batches = [ChangeBatch(zone=zone_by_id[zid], changes=tuple(c)) for zid, c in grouped.items()]
        return batches, unrouted

    def apply(self, changes: Iterable[Change], zones: Sequence[HostedZone]) -> ApplyResult:
        batches, unrouted = self.group_by_zone(changes, zones)
        result = ApplyResult(unrouted=unrouted)

        for batch in batches:
            for change in batch.changes:
                logger.info(
                    f"{'[dry-run] ' if self.dry_run else ''}{change.action.value} "
                    f"{change.target_name} -> {change.target_value} ({batch.zone.name})"
                )
            if self.dry_run:
                continue

            try:
                change_id = self.provider.change_record_sets(
                    batch.zone, [c.to_wire(self.ttl) for c in batch.changes]
                )
            except DNSProviderError as e:
                logger.error(f"Failed to submit {len(batch.changes)} change(s) to {batch.zone.name}: {e}")
                result.failed.append((batch, e))
                if not self.continue_on_error:
                    raise ChangeSubmissionError(
                        f"Change batch for {batch.zone.name} failed: {e}", result
                    ) from e
                continue

            logger.info(f"Submitted {len(batch.changes)} change(s) to {batch.zone.name} ({change_id})")
            result.submitted.append(batch)

        if result.failed:
            zones_failed = ", ".join(b.zone.name for b, _ in result.failed)
            raise ChangeSubmissionError(f"Change batches failed for: {zones_failed}", result)
        return result
