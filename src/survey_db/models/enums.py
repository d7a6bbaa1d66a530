"""Database-level enumerations for survey sessions."""

import enum


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a survey session.

    Transitions:
        created -> in_progress    (first answer recorded)
        in_progress -> completed  (question list exhausted)
        in_progress -> ineligible (rejection routing acknowledged)
    """

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    INELIGIBLE = "ineligible"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.INELIGIBLE)
