# Merge workflow - per-operation state machine for in-process callers (UI event handlers)
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from duplicates import find_duplicate_groups
from errors import (
    InvalidMergeRequest,
    InvalidSearchQuery,
    InvalidTransition,
    MergeWriteFailure,
    SearchFailure,
)
from merge import MergeResult, SessionContext, merge_duplicate_group
from models import DuplicateGroup, PatientIdentity


class MergeState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    GROUPS_FOUND = "groups_found"
    PRIMARY_SELECTED = "primary_selected"
    CONFIRMATION_PENDING = "confirmation_pending"
    MERGING = "merging"
    COMPLETED = "completed"
    FAILED = "failed"


NO_DUPLICATES_MESSAGE = "No potential duplicate patients found"


class MergeWorkflow:
    """
    Search -> select primary -> confirm -> merge, one operation at a time.

    Failures are caught here and turned into a transient `message`; nothing is
    retried automatically. A failed search keeps the query, a failed merge
    keeps the groups and the selection so the user can confirm again.
    """

    def __init__(self, clinic_id: Optional[str] = None):
        self.clinic_id = clinic_id
        self.state = MergeState.IDLE
        self.query = ""
        self.groups: List[DuplicateGroup] = []
        self.selected_group: Optional[DuplicateGroup] = None
        self.selected_primary: Optional[PatientIdentity] = None
        self.message: Optional[str] = None
        self.last_result: Optional[MergeResult] = None

    def _require(self, *allowed: MergeState):
        if self.state not in allowed:
            raise InvalidTransition(f"Cannot do this while {self.state.value}")

    def _clear_selection(self):
        self.groups = []
        self.selected_group = None
        self.selected_primary = None

    def search(self, fragment: str) -> List[DuplicateGroup]:
        self._require(
            MergeState.IDLE,
            MergeState.GROUPS_FOUND,
            MergeState.PRIMARY_SELECTED,
            MergeState.COMPLETED,
            MergeState.FAILED,
        )
        previous = self.state
        self.query = fragment
        self.message = None
        self.state = MergeState.SEARCHING
        try:
            groups = find_duplicate_groups(fragment, clinic_id=self.clinic_id)
        except InvalidSearchQuery as exc:
            self.state = previous
            self.message = str(exc)
            return self.groups
        except SearchFailure as exc:
            self._clear_selection()
            self.state = MergeState.IDLE
            self.message = str(exc)
            return []

        self._clear_selection()
        self.groups = groups
        if not groups:
            self.state = MergeState.IDLE
            self.message = NO_DUPLICATES_MESSAGE
        else:
            self.state = MergeState.GROUPS_FOUND
            total = sum(len(g.members) for g in groups)
            self.message = f"Found {total} potential duplicate records"
        return groups

    def select_primary(self, group_index: int, patient_name: str, date_of_birth: str) -> PatientIdentity:
        self._require(MergeState.GROUPS_FOUND, MergeState.PRIMARY_SELECTED, MergeState.FAILED)
        if not 0 <= group_index < len(self.groups):
            raise InvalidMergeRequest(f"No duplicate group at index {group_index}")
        group = self.groups[group_index]
        primary = group.find_member(patient_name, date_of_birth)
        if primary is None:
            raise InvalidMergeRequest("Primary patient must be one of the group's records")
        self.selected_group = group
        self.selected_primary = primary
        self.state = MergeState.PRIMARY_SELECTED
        return primary

    def request_confirmation(self):
        self._require(MergeState.PRIMARY_SELECTED, MergeState.FAILED)
        if self.selected_primary is None:
            raise InvalidTransition("Please select a primary patient record")
        self.message = None
        self.state = MergeState.CONFIRMATION_PENDING

    def decline_confirmation(self):
        self._require(MergeState.CONFIRMATION_PENDING)
        self.state = MergeState.PRIMARY_SELECTED

    def confirm(self, context: SessionContext) -> Optional[MergeResult]:
        """Run the merge. No cancellation once this starts."""
        self._require(MergeState.CONFIRMATION_PENDING)
        self.state = MergeState.MERGING
        try:
            result = merge_duplicate_group(
                self.selected_group,
                self.selected_primary.patientName,
                self.selected_primary.dateOfBirth,
                context,
            )
        except (MergeWriteFailure, InvalidMergeRequest) as exc:
            self.state = MergeState.FAILED
            self.message = str(exc)
            return None

        self.last_result = result
        self.message = (
            f"Successfully merged {len(result.episodeIdsUpdated)} episodes "
            f"into {result.primary.patientName}'s record"
        )
        self._clear_selection()
        self.query = ""
        self.state = MergeState.COMPLETED
        return result

    def cancel(self):
        """Abandon the flow. Read-only up to here, so nothing to undo."""
        self._require(
            MergeState.IDLE,
            MergeState.GROUPS_FOUND,
            MergeState.PRIMARY_SELECTED,
            MergeState.CONFIRMATION_PENDING,
            MergeState.COMPLETED,
            MergeState.FAILED,
        )
        self._clear_selection()
        self.message = None
        self.state = MergeState.IDLE
