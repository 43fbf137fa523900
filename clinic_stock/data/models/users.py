from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, model_validator

from .base import LedgerModel


class User(LedgerModel):
    """An Admin (all branches) or Staff (one branch) account."""
    id: str = Field(description="Unique user identifier")
    name: str = Field(description="Display name")
    username: str = Field(description="Login name")
    password_hash: Optional[str] = Field(default=None, description="Salted password hash")
    role: Literal["Admin", "Staff"] = Field(description="Access role")
    branch_id: Optional[str] = Field(default=None, description="Branch a Staff user is scoped to")

    @model_validator(mode="after")
    def _staff_has_branch(self) -> "User":
        if self.role == "Staff" and not self.branch_id:
            raise ValueError("Staff users must be assigned to a branch")
        return self

    @property
    def is_admin(self) -> bool:
        return self.role == "Admin"
