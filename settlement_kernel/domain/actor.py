"""
Actor -- the explicit identity threaded through every workflow call.

There is no ambient "current user".  Every operation that mutates state
receives an ``Actor`` and stamps its e-mail on the entity (``*_by``), the
audit record and the structured log context.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Parties in the settlement chain."""

    BRINS = "BRINS"  # ceding insurer branch
    TUGURE = "TUGURE"  # reinsurer
    ADMIN = "ADMIN"  # supervisor, may resolve reopen requests


# Notification audience; "ALL" fans out to every role
TARGET_ALL = "ALL"


@dataclass(frozen=True)
class Actor:
    """Who is performing an action, and under which role."""

    email: str
    role: str

    def __post_init__(self) -> None:
        if not self.email or not self.email.strip():
            raise ValueError("Actor email must not be empty")
        if not self.role or not str(self.role).strip():
            raise ValueError("Actor role must not be empty")

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, Role) else str(self.role)

