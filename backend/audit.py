# Merge audit log - append-only in-memory table of patient_merge actions
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from models import AuditLogEntry, DuplicateGroup, PatientIdentity, audit_logs

PATIENT_MERGE_ACTION = "patient_merge"
DEFAULT_HISTORY_LIMIT = 50


def build_merge_audit_entry(
    group: DuplicateGroup,
    primary: PatientIdentity,
    episode_ids_updated: List[str],
    user_id: str,
    clinic_id: Optional[str],
    user_agent: Optional[str],
    now: Optional[datetime] = None,
) -> AuditLogEntry:
    """
    Snapshot of one merge: merged identities (pre-merge) and the surviving
    identity plus every rewritten episode id (post-merge).
    """
    now = now or datetime.now(timezone.utc)
    merged_patients = [
        {
            "patientName": member.patientName,
            "dateOfBirth": member.dateOfBirth,
            "episodeIds": member.episodeIds,
            "episodeCount": member.episodeCount,
        }
        for member in group.members
        if member is not primary
    ]
    return AuditLogEntry(
        id=str(uuid.uuid4()),
        action=PATIENT_MERGE_ACTION,
        tableName="episodes",
        recordId=f"merge_{int(now.timestamp() * 1000)}",
        userId=user_id,
        clinicId=clinic_id,
        createdAt=now.isoformat(),
        oldData={
            "mergedPatients": merged_patients,
            "totalEpisodesAffected": len(episode_ids_updated),
        },
        newData={
            "primaryPatient": {
                "patientName": primary.patientName,
                "dateOfBirth": primary.dateOfBirth,
                "totalEpisodes": primary.episodeCount + len(episode_ids_updated),
            },
            "episodeIdsUpdated": list(episode_ids_updated),
        },
        userAgent=user_agent,
        ipAddress=None,
    )


def list_audit_log_entries(
    action: str = PATIENT_MERGE_ACTION,
    limit: int = DEFAULT_HISTORY_LIMIT,
    clinic_id: Optional[str] = None,
) -> List[AuditLogEntry]:
    """Most recent entries for an action, newest first, optionally for one clinic."""
    matching = [
        entry for entry in audit_logs
        if entry.action == action and (clinic_id is None or entry.clinicId == clinic_id)
    ]
    matching.sort(key=lambda entry: entry.createdAt, reverse=True)
    return matching[:limit]


def audit_entry_to_dict(entry: AuditLogEntry) -> Dict:
    """Serialize an entry for API responses."""
    return {
        "id": entry.id,
        "action": entry.action,
        "tableName": entry.tableName,
        "recordId": entry.recordId,
        "userId": entry.userId,
        "clinicId": entry.clinicId,
        "createdAt": entry.createdAt,
        "oldData": entry.oldData,
        "newData": entry.newData,
        "userAgent": entry.userAgent,
        "ipAddress": entry.ipAddress,
    }


def reset_audit_log():
    """Clear the audit table (for demo reset and tests)."""
    audit_logs.clear()
