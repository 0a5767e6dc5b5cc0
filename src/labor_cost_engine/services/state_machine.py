"""Time entry state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from labor_cost_engine.models import TimeEntry


class TimeEntryStatus(str, Enum):
    """Time entry status values."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    VOIDED = "voided"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TimeEntryStateMachine:
    """State machine for time entry status transitions.

    Allowed transitions:
    - draft → submitted
    - draft → voided
    - submitted → approved
    - submitted → rejected
    - submitted → voided
    - rejected → submitted (resubmit)
    - rejected → voided
    - approved → voided
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TimeEntryStatus.DRAFT: [TimeEntryStatus.SUBMITTED, TimeEntryStatus.VOIDED],
        TimeEntryStatus.SUBMITTED: [
            TimeEntryStatus.APPROVED,
            TimeEntryStatus.REJECTED,
            TimeEntryStatus.VOIDED,
        ],
        TimeEntryStatus.REJECTED: [TimeEntryStatus.SUBMITTED, TimeEntryStatus.VOIDED],
        TimeEntryStatus.APPROVED: [TimeEntryStatus.VOIDED],
        TimeEntryStatus.VOIDED: [],  # Terminal state
    }

    # Statuses where hours, job and description can be edited
    EDITABLE = {
        TimeEntryStatus.DRAFT,
        TimeEntryStatus.REJECTED,
    }

    # Statuses whose pricing can be regenerated
    PRICEABLE = {
        TimeEntryStatus.DRAFT,
        TimeEntryStatus.SUBMITTED,
        TimeEntryStatus.REJECTED,
        TimeEntryStatus.APPROVED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if an entry's inputs can be modified in this status."""
        return status in cls.EDITABLE

    @classmethod
    def can_reprice(cls, status: str) -> bool:
        return status in cls.PRICEABLE

    @classmethod
    def is_resubmit(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a resubmission (rejected → submitted)."""
        return from_status == TimeEntryStatus.REJECTED and to_status == TimeEntryStatus.SUBMITTED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def validate_entry_for_transition(cls, entry: TimeEntry, to_status: str) -> list[str]:
        """Validate an entry for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = entry.status

        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors

        if to_status == TimeEntryStatus.SUBMITTED:
            if entry.hours is None or entry.hours <= 0:
                errors.append("Entry has no hours recorded")

        elif to_status == TimeEntryStatus.APPROVED:
            if entry.applied_regular_rate is None:
                errors.append("Entry has not been priced")

        return errors
