"""Members router: add and remove group members."""

from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils.validation import get_group_or_404, get_membership, get_user_by_email, verify_group_admin


router = APIRouter(prefix="/groups/{group_id}", tags=["members"])


@router.post("/members", response_model=schemas.GroupMember)
def add_group_member(
    group_id: int,
    member_add: schemas.GroupMemberAdd,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    get_group_or_404(db, group_id)
    verify_group_admin(db, group_id, current_user.id)

    # Find user by email
    user = get_user_by_email(db, member_add.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if get_membership(db, group_id, user.id):
        raise HTTPException(status_code=400, detail="User is already a member of this group")

    new_member = models.GroupMember(group_id=group_id, user_id=user.id, role=member_add.role)
    db.add(new_member)
    db.commit()
    db.refresh(new_member)

    return schemas.GroupMember(
        id=new_member.id,
        user_id=user.id,
        full_name=user.full_name or user.email,
        email=user.email,
        role=new_member.role,
        payment_handle=user.payment_handle
    )


@router.delete("/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_group_member(
    group_id: int,
    user_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    """
    Remove a member. Admins may remove anyone, members may leave.

    Expenses the member took part in are left exactly as they were; they only
    drop out of balance and settlement views.
    """
    group = get_group_or_404(db, group_id)
    if user_id != current_user.id:
        verify_group_admin(db, group_id, current_user.id)

    member = get_membership(db, group_id, user_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")

    if user_id == group.created_by_id:
        raise HTTPException(status_code=400, detail="The group creator cannot be removed")

    db.delete(member)
    db.commit()
