# Overview: Service-layer maintenance jobs: storage migration and security-event cleanup.

"""
Maintenance

migrate_repository copies every business, property and staff record from
one repository into another, in that order, so a property never lands
before its business and access lists only name properties already copied.
The usual direction is the legacy key-value layout into the document
store.

A record whose primary identifier the target already holds is skipped
unless overwrite is set, so a rerun after a partial migration only copies
what is missing. Identifiers are claimed in the target as records arrive,
which on the document backend also reserves them against future
generation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from ..errors import ValidationError
from ..extensions import db
from ..models import SecurityEvent
from ..repository import Repository
from zentry.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    migrated: dict[str, int] = field(default_factory=lambda: {"businesses": 0, "properties": 0, "staff": 0})
    skipped: dict[str, int] = field(default_factory=lambda: {"businesses": 0, "properties": 0, "staff": 0})
    dry_run: bool = False

    @property
    def total_migrated(self) -> int:
        return sum(self.migrated.values())

    def to_dict(self) -> dict:
        return {"migrated": dict(self.migrated), "skipped": dict(self.skipped), "dry_run": self.dry_run}


def _claim(target: Repository, kind: str, value: str | None) -> bool:
    if not value:
        return True
    return target.claim_identifier(kind, value)


def migrate_repository(
    source: Repository,
    target: Repository,
    *,
    overwrite: bool = False,
    dry_run: bool = False,
) -> MigrationReport:
    report = MigrationReport(dry_run=dry_run)

    def copy(label, records, primary, secondary, save):
        for record in records:
            kind, value = primary(record)
            present = target.identifier_in_use(kind, value)
            if present and not overwrite:
                report.skipped[label] += 1
                continue
            if not dry_run:
                _claim(target, kind, value)
                for other_kind, other_value in secondary(record):
                    _claim(target, other_kind, other_value)
                save(record)
            report.migrated[label] += 1

    copy(
        "businesses",
        source.list_businesses(),
        lambda b: ("business_id", b.business_id),
        lambda b: [("business_code", b.business_code)],
        target.save_business,
    )
    copy(
        "properties",
        source.list_properties(),
        lambda p: ("property_code", p.property_code),
        lambda p: [("connection_code", p.connection_code)],
        target.save_property,
    )
    copy(
        "staff",
        source.list_staff(),
        lambda s: ("staff_id", s.staff_id),
        lambda s: [],
        target.save_staff,
    )

    logger.info(
        "Migrated %s from %s to %s%s (skipped %s)",
        report.migrated, source.backend or "source", target.backend or "target",
        " [dry run]" if dry_run else "", report.skipped,
    )
    return report


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """
    Delete security events older than retention_days.

    Recent failures drive login throttling, so retention_days must cover
    the lockout window.
    """
    if retention_days < 1:
        raise ValidationError("retention_days must be at least 1")
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
