"""
User records referenced by teams, members and organizers.
Account management and login live outside this service.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from portal.database import get_session
from portal.models.user import User, UserRole

router = APIRouter()


class UserCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    username: str
    email: str
    full_name: str
    student_id: Optional[str] = None
    faculty: Optional[str] = None
    major: Optional[str] = None
    role: UserRole = UserRole.user

    @field_validator("username", "email", "full_name")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    student_id: Optional[str] = None
    faculty: Optional[str] = None
    major: Optional[str] = None
    role: UserRole
    created_at: datetime


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: UserCreate, session: Session = Depends(get_session)):
    user = User(**payload.model_dump())
    try:
        session.add(user)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Username or email already registered")
    session.refresh(user)
    return user


@router.get("/users", response_model=List[UserResponse])
def list_users(session: Session = Depends(get_session)):
    return session.exec(select(User).order_by(User.id)).all()


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int, session: Session = Depends(get_session)):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
