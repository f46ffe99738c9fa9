"""Reward engine error taxonomy.

PreconditionViolation subclasses ValueError so callers can surface the
message as a rejected operation. MissingActor is recoverable and is caught
by batch callers (progression, referral payouts, item-drop medals).
"""

from __future__ import annotations


class PreconditionViolation(ValueError):
    """An operation was rejected without mutating any state."""


class InvalidAmount(PreconditionViolation):
    pass


class InsufficientBalance(PreconditionViolation):
    def __init__(self, balance: int, requested: int) -> None:
        super().__init__(f"Insufficient medal balance: have {balance}, need {requested}")
        self.balance = balance
        self.requested = requested


class AlreadyCheckedIn(PreconditionViolation):
    def __init__(self) -> None:
        super().__init__("Already checked in today")


class AlreadyReferred(PreconditionViolation):
    def __init__(self) -> None:
        super().__init__("You have already been referred")


class InvalidReferralCode(PreconditionViolation):
    def __init__(self) -> None:
        super().__init__("Invalid referral code")


class SelfReferral(PreconditionViolation):
    def __init__(self) -> None:
        super().__init__("You cannot refer yourself")


class ItemNotFound(PreconditionViolation):
    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id


class ItemNotForSale(PreconditionViolation):
    def __init__(self, item_id: int) -> None:
        super().__init__("This item is not for sale")
        self.item_id = item_id


class InvalidTimezone(PreconditionViolation):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown timezone: {name!r}")
        self.name = name


class MissingActor(LookupError):
    """No alive, balance-bearing character exists for the user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No active character found for user {user_id}")
        self.user_id = user_id


class ExternalDependencyUnavailable(RuntimeError):
    """An external collaborator (weather lookup) failed or timed out."""
