"""Validation utilities for group membership, access control, and expense participants."""

from typing import Iterable

from sqlalchemy.orm import Session

import models
from utils.errors import NotFound, PermissionDenied, ValidationError


def get_user_by_email(db: Session, email: str):
    """Get a user by their email address."""
    return db.query(models.User).filter(models.User.email == email).first()


def get_group_or_404(db: Session, group_id: int):
    """Get a group by ID or raise 404 if not found."""
    group = db.query(models.Group).filter(models.Group.id == group_id).first()
    if not group:
        raise NotFound("Group not found")
    return group


def get_membership(db: Session, group_id: int, user_id: int):
    return db.query(models.GroupMember).filter(
        models.GroupMember.group_id == group_id,
        models.GroupMember.user_id == user_id
    ).first()


def verify_group_membership(db: Session, group_id: int, user_id: int):
    """Verify that a user is a member of a group, raise 403 if not."""
    member = get_membership(db, group_id, user_id)
    if not member:
        raise PermissionDenied("You are not a member of this group")
    return member


def is_group_admin(db: Session, group_id: int, user_id: int) -> bool:
    member = get_membership(db, group_id, user_id)
    return bool(member and member.role == "admin")


def verify_group_admin(db: Session, group_id: int, user_id: int):
    """Verify that a user administers a group, raise 403 if not."""
    member = verify_group_membership(db, group_id, user_id)
    if member.role != "admin":
        raise PermissionDenied("Only a group admin can perform this action")
    return member


def get_current_members(db: Session, group_id: int) -> list:
    """(GroupMember, User) pairs in membership order."""
    return db.query(models.GroupMember, models.User).join(
        models.User, models.GroupMember.user_id == models.User.id
    ).filter(
        models.GroupMember.group_id == group_id
    ).order_by(models.GroupMember.id).all()


def validate_expense_participants(
    db: Session,
    group_id: int,
    payer_id: int,
    participant_ids: Iterable[int]
) -> None:
    """Validate that the payer and every split participant currently belong to the group."""
    member_ids = {
        row.user_id for row in db.query(models.GroupMember.user_id).filter(
            models.GroupMember.group_id == group_id
        )
    }

    if payer_id not in member_ids:
        raise ValidationError(f"Payer with ID {payer_id} is not a member of this group")

    for user_id in participant_ids:
        if user_id not in member_ids:
            raise ValidationError(f"User with ID {user_id} in splits is not a member of this group")
