# Merge executor - consolidate a duplicate group onto one primary identity
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import store
from audit import build_merge_audit_entry
from duplicates import is_probable_duplicate
from errors import InvalidMergeRequest, MergeWriteFailure
from models import AuditLogEntry, DuplicateGroup, PatientIdentity, identity_key

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Acting user and clinic scope, passed in explicitly by the caller"""
    user_id: str
    clinic_id: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class MergeResult:
    primary: PatientIdentity
    episodeIdsUpdated: List[str] = field(default_factory=list)
    totalEpisodes: int = 0
    auditEntry: Optional[AuditLogEntry] = None  # None when the audit write failed


def check_duplicate_group(group: DuplicateGroup):
    """
    Reject groups the grouping engine could not have produced: repeated
    identities, or no member that is a probable duplicate of all the others.
    """
    keys = [identity_key(m.patientName, m.dateOfBirth) for m in group.members]
    if len(set(keys)) != len(keys):
        raise InvalidMergeRequest("Each patient record may appear only once in a group")

    for anchor in group.members:
        if all(m is anchor or is_probable_duplicate(anchor, m) for m in group.members):
            return
    raise InvalidMergeRequest("Patient records are not probable duplicates of each other")


def merge_duplicate_group(
    group: DuplicateGroup,
    primary_name: str,
    primary_dob: str,
    context: SessionContext,
) -> MergeResult:
    """
    Rewrite patientName/dateOfBirth on every non-primary member's episodes to
    the primary's values, then append one audit entry.

    The identity rewrite is a single batched store call; if it raises, the
    merge is reported as failed as a whole. The audit write is best-effort:
    its failure is logged and never undoes or blocks the merge.
    No locking: concurrent merges over the same episodes are last-write-wins.
    """
    if len(group.members) < 2:
        raise InvalidMergeRequest("A duplicate group needs at least two patient records")

    primary = group.find_member(primary_name, primary_dob)
    if primary is None:
        raise InvalidMergeRequest("Primary patient must be one of the group's records")
    check_duplicate_group(group)

    episode_ids: List[str] = []
    for member in group.members:
        if member is not primary:
            episode_ids.extend(member.episodeIds)

    try:
        store.batch_update_patient_identity(episode_ids, primary.patientName, primary.dateOfBirth)
    except store.StoreError as exc:
        logger.error("Patient merge into %r failed: %s", primary.patientName, exc)
        raise MergeWriteFailure("Failed to merge patient records") from exc

    logger.info(
        "Merged %d episode(s) into %s (%s) by user %s",
        len(episode_ids), primary.patientName, primary.dateOfBirth, context.user_id,
    )

    entry = build_merge_audit_entry(
        group,
        primary,
        episode_ids,
        user_id=context.user_id,
        clinic_id=context.clinic_id,
        user_agent=context.user_agent,
    )
    try:
        store.append_audit_log_entry(entry)
    except Exception:
        logger.exception("Failed to create audit log for merge %s", entry.recordId)
        entry = None

    return MergeResult(
        primary=primary,
        episodeIdsUpdated=episode_ids,
        totalEpisodes=primary.episodeCount + len(episode_ids),
        auditEntry=entry,
    )
