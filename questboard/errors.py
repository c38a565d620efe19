from __future__ import annotations


class QuestboardError(Exception):
    """Base class for errors raised by the quest engine and its services."""


class QuestNotFoundError(QuestboardError, KeyError):
    """Raised when a toggle or progress update targets an unknown quest instance."""

    def __init__(self, quest_id: str) -> None:
        super().__init__(quest_id)
        self.quest_id = quest_id

    def __str__(self) -> str:
        return f"Quest not found: {self.quest_id}"


class InvalidGranularityError(QuestboardError, ValueError):
    def __init__(self, granularity: str) -> None:
        super().__init__(granularity)
        self.granularity = granularity

    def __str__(self) -> str:
        return f"Unknown quest granularity: {self.granularity!r}"


class InconsistentStateError(QuestboardError):
    """Raised when progress or quest state breaks an invariant.

    This should never happen while the engine is used correctly; it is surfaced
    instead of silently repairing the stored document.
    """


class TemplateError(QuestboardError, ValueError):
    """Raised when a quest template cannot be parsed or rendered."""


class UserNotFoundError(QuestboardError, KeyError):
    def __init__(self, user_id: str) -> None:
        super().__init__(user_id)
        self.user_id = user_id

    def __str__(self) -> str:
        return f"User not found: {self.user_id}"


class UserExistsError(QuestboardError):
    def __init__(self, user_id: str) -> None:
        super().__init__(user_id)
        self.user_id = user_id

    def __str__(self) -> str:
        return f"User already exists: {self.user_id}"


class InvalidUserError(QuestboardError, ValueError):
    """Raised for malformed user ids or user documents."""


class InvalidAssignmentError(QuestboardError, ValueError):
    """Raised for malformed admin assign/replace/remove requests."""


class AdminAuthError(QuestboardError):
    """Raised when the admin password is missing or wrong."""


__all__ = [
    "QuestboardError",
    "QuestNotFoundError",
    "InvalidGranularityError",
    "InconsistentStateError",
    "TemplateError",
    "UserNotFoundError",
    "UserExistsError",
    "InvalidUserError",
    "InvalidAssignmentError",
    "AdminAuthError",
]
