"""Validation errors raised by the progression engine.

All of these are raised before any write happens. Duplicate awards and
duplicate claims are not errors and never surface here.
"""

from __future__ import annotations


class ProgressionError(ValueError):
    """Base class for rejected progression operations."""


class InvalidXPAmountError(ProgressionError):
    def __init__(self, amount: object) -> None:
        super().__init__(f"XP amount must be a positive integer, got {amount!r}")
        self.amount = amount


class InvalidUserIdError(ProgressionError):
    def __init__(self, user_id: object) -> None:
        super().__init__(f"Malformed user id: {user_id!r}")
        self.user_id = user_id


class UserNotFoundError(ProgressionError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} does not exist")
        self.user_id = user_id


class UnknownBadgeError(ProgressionError):
    def __init__(self, key: object) -> None:
        super().__init__(f"Unknown badge key: {key!r}")
        self.key = key


class InvalidNotificationTypeError(ProgressionError):
    pass


class BadgeRegistryError(ProgressionError):
    """Raised when a badge registry fails load-time validation."""


class UnknownActivityError(ProgressionError):
    def __init__(self, activity: object) -> None:
        super().__init__(f"Unknown activity: {activity!r}")
        self.activity = activity


class InvalidPageError(ProgressionError):
    def __init__(self, page: object, per_page: object) -> None:
        super().__init__(f"page and per_page must be positive, got page={page!r} per_page={per_page!r}")
        self.page = page
        self.per_page = per_page
