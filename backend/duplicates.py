# Duplicate grouping engine - fuzzy name + exact DOB clustering of episodes
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

import store
from errors import InvalidSearchQuery, SearchFailure
from models import DuplicateGroup, Episode, PatientIdentity, identity_key
from similarity import name_similarity

logger = logging.getLogger(__name__)

# Fixed policy: similarity must be strictly greater than this, and DOB must match exactly
SIMILARITY_THRESHOLD = 0.7
MIN_QUERY_LENGTH = 2


def bucket_by_identity(records: List[Episode]) -> List[PatientIdentity]:
    """Partition records on the exact (lower-cased name, DOB) key, in first-seen order"""
    buckets: Dict[Tuple[str, str], PatientIdentity] = {}
    for ep in records:
        key = identity_key(ep.patientName, ep.dateOfBirth)
        if key not in buckets:
            buckets[key] = PatientIdentity(patientName=ep.patientName, dateOfBirth=ep.dateOfBirth)
        buckets[key].episodes.append(ep)
    return list(buckets.values())


def is_probable_duplicate(first: PatientIdentity, second: PatientIdentity) -> bool:
    """Similar names (above threshold) and identical date of birth"""
    if first.dateOfBirth != second.dateOfBirth:
        return False
    similarity = name_similarity(first.patientName.lower(), second.patientName.lower())
    return similarity > SIMILARITY_THRESHOLD


def group_identities(identities: List[PatientIdentity]) -> List[DuplicateGroup]:
    """
    Single greedy pass. Each unclaimed anchor pulls in every other unclaimed
    identity it matches directly; pulled-in identities are never anchors.
    Not a transitive closure: A~B and B~C with A!~C only groups C if it is
    compared against the right anchor first.
    """
    claimed: Set[int] = set()
    groups: List[DuplicateGroup] = []

    for i, anchor in enumerate(identities):
        if i in claimed:
            continue

        members = [anchor]
        for j, other in enumerate(identities):
            if i == j or j in claimed:
                continue
            if is_probable_duplicate(anchor, other):
                members.append(other)
                claimed.add(j)

        if len(members) > 1:
            claimed.add(i)
            groups.append(DuplicateGroup(members=members))

    return groups


def group_duplicates(records: List[Episode]) -> List[DuplicateGroup]:
    """Records -> duplicate groups. Empty or all-unique input gives []"""
    return group_identities(bucket_by_identity(records))


def find_duplicate_groups(fragment: str, clinic_id: Optional[str] = None) -> List[DuplicateGroup]:
    """
    Search operation: fetch episodes whose patient name contains the fragment,
    then group them. Store errors surface as SearchFailure; no partial results.
    """
    query = (fragment or "").strip()
    if len(query) < MIN_QUERY_LENGTH:
        raise InvalidSearchQuery(f"Please enter at least {MIN_QUERY_LENGTH} characters to search")

    try:
        records = store.search_records_by_name_substring(query, clinic_id=clinic_id)
    except store.StoreError as exc:
        logger.error("Duplicate search failed for %r: %s", query, exc)
        raise SearchFailure("Failed to search for duplicates") from exc

    groups = group_duplicates(records)
    if groups:
        logger.info(
            "Found %d duplicate group(s) covering %d identities for %r",
            len(groups), sum(len(g.members) for g in groups), query,
        )
    else:
        logger.info("No potential duplicate patients found for %r (%d records)", query, len(records))
    return groups
