"""
Role Schema

Users hold an ordered set of roles. The first is the primary role
(the legacy single-role column); the active role is whatever the
user picked for the current session.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .forum import Review


class Role(str, Enum):
    """
    Role labels a forum user can hold.
    """
    ADMIN = "admin"             # Manages users and roles
    INSTRUCTOR = "instructor"   # Approves reviewer requests
    STUDENT = "student"         # Asks, answers, curates
    REVIEWER = "reviewer"       # Reviews answers
    STAFF = "staff"             # Moderation and reporting


class User(BaseModel):
    """
    A forum user as the role service sees them.
    """
    user_id: str = Field(
        ...,
        min_length=1,
        description="Unique user name"
    )

    display_name: str = Field(
        default="",
        description="Real name shown in the forum"
    )

    email: Optional[str] = Field(
        default=None,
        description="Contact address"
    )

    roles: list[Role] = Field(
        default_factory=list,
        description="Held roles in assignment order"
    )

    created_at: Optional[datetime] = Field(
        default=None,
        description="When the account was created"
    )

    @property
    def primary_role(self) -> Optional[Role]:
        return self.roles[0] if self.roles else None


class RoleSet(BaseModel):
    """
    The roles a user holds plus the session-selected active role.

    active_role must be a member of roles. When unset it falls back
    to the primary role.
    """
    user_id: str
    roles: list[Role] = Field(default_factory=list)
    active_role: Optional[Role] = None

    @model_validator(mode="after")
    def active_role_is_held(self) -> "RoleSet":
        if self.active_role is None:
            self.active_role = self.primary_role
        elif self.active_role not in self.roles:
            raise ValueError(
                f"active role '{self.active_role.value}' is not held by {self.user_id}"
            )
        return self

    @property
    def primary_role(self) -> Optional[Role]:
        return self.roles[0] if self.roles else None

    def holds(self, role: Role) -> bool:
        return role in self.roles


class ReviewerProfile(BaseModel):
    """
    Secondary record created once a user holds the reviewer role.
    """
    user_id: str = Field(
        ...,
        description="Reviewer's user id"
    )

    display_name: str = Field(
        default="",
        description="Name shown on the profile"
    )

    experience: str = Field(
        default="",
        description="Free-text experience statement written by the reviewer"
    )

    created_at: datetime = Field(
        ...,
        description="When the profile was created"
    )


class ReviewerProfileDetail(ReviewerProfile):
    """
    Profile plus the reviewer's review history, newest first.
    """
    reviews: list[Review] = Field(default_factory=list)

    @property
    def review_count(self) -> int:
        return len(self.reviews)
