from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String
from sqlmodel import Column, Field, SQLModel


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    email: str = Field(unique=True)
    full_name: str
    student_id: Optional[str] = None
    faculty: Optional[str] = None
    major: Optional[str] = None
    role: UserRole = Field(default=UserRole.user, sa_column=Column(String, nullable=False, default="user"))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin
