"""User profiles. The id is the subject issued by the external identity provider."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


class Profile(SQLModel, table=True):
    id: str = Field(primary_key=True)
    email: str = Field(default="", index=True)
    full_name: Optional[str] = None
    role: str = Field(default=ROLE_USER)  # "user" | "admin"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
