"""
User provisioning and profile endpoints.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from grocery_receipts.database import get_db
from grocery_receipts.errors import BadRequestError, NotFoundError
from grocery_receipts.models.user import UserModel
from grocery_receipts.schemas import UserOut, UserUpdate
from grocery_receipts.services.auth import CurrentUser, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


def transform_user(model: UserModel) -> UserOut:
    return UserOut(id=model.id, email=model.email, name=model.name, image=model.image)


# ── POST /api/users ──────────────────────────────────────────────────────
@router.post("/users", response_model=UserOut)
def create_user(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mirror the token's identity into the users table (idempotent)."""
    if not user.email:
        raise BadRequestError("Email is required")

    existing = db.query(UserModel).filter(UserModel.id == user.user_id).first()
    if existing:
        return transform_user(existing)

    record = UserModel(id=user.user_id, email=user.email)
    db.add(record)
    db.commit()
    logger.info("Created user %s", user.user_id)
    return transform_user(record)


# ── GET /api/users/me ────────────────────────────────────────────────────
@router.get("/users/me", response_model=UserOut)
def get_profile(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = db.query(UserModel).filter(UserModel.id == user.user_id).first()
    if not record:
        raise NotFoundError("User not found")
    return transform_user(record)


# ── PUT /api/users/me ────────────────────────────────────────────────────
@router.put("/users/me", response_model=UserOut)
def update_profile(
    req: UserUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = db.query(UserModel).filter(UserModel.id == user.user_id).first()
    if not record:
        raise NotFoundError("User not found")
    for field, value in req.model_dump(exclude_unset=True).items():
        setattr(record, field, value)
    db.commit()
    logger.info("Updated profile for user %s", user.user_id)
    return transform_user(record)
