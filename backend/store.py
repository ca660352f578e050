# Storage collaborator - generic query/update calls over the in-memory tables
from __future__ import annotations

import logging
from typing import List, Optional

from models import AuditLogEntry, Episode, Profile, audit_logs, episodes, profiles

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the backing store cannot serve a query or update."""


def search_records_by_name_substring(fragment: str, clinic_id: Optional[str] = None) -> List[Episode]:
    """
    Case-insensitive partial match on patientName, newest dateOfService first.
    When clinic_id is given, only that clinic's episodes are visible.
    """
    needle = fragment.lower()
    matches = [
        ep for ep in episodes
        if needle in ep.patientName.lower() and (clinic_id is None or ep.clinicId == clinic_id)
    ]
    # Stable sort keeps insertion order among same-day episodes
    return sorted(matches, key=lambda ep: ep.dateOfService, reverse=True)


def get_episode(episode_id: str) -> Optional[Episode]:
    """Get episode by ID"""
    for ep in episodes:
        if ep.episodeId == episode_id:
            return ep
    return None


def batch_update_patient_identity(record_ids: List[str], new_name: str, new_dob: str) -> int:
    """
    Rewrite patientName/dateOfBirth on every episode whose id is in record_ids.
    Unknown ids are ignored, like an UPDATE ... WHERE id IN (...). Returns rows updated.
    """
    wanted = set(record_ids)
    updated = 0
    for ep in episodes:
        if ep.episodeId in wanted:
            ep.patientName = new_name
            ep.dateOfBirth = new_dob
            updated += 1
    logger.debug("Updated identity on %d of %d requested episodes", updated, len(wanted))
    return updated


def append_audit_log_entry(entry: AuditLogEntry) -> AuditLogEntry:
    """Insert one audit row. Rows are never updated or deleted."""
    if any(existing.id == entry.id for existing in audit_logs):
        raise StoreError(f"Duplicate audit log id: {entry.id}")
    audit_logs.append(entry)
    return entry


def get_profile(user_id: str) -> Optional[Profile]:
    """Get staff profile by user ID"""
    return profiles.get(user_id)
