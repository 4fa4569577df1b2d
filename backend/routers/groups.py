"""Groups router: create and read groups, manage the trip budget."""

from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils.validation import get_current_members, get_group_or_404, verify_group_admin, verify_group_membership


router = APIRouter(prefix="/groups", tags=["groups"])


def _check_budget(budget_min, budget_max):
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        raise HTTPException(status_code=400, detail="Minimum budget cannot exceed maximum budget")


@router.post("", response_model=schemas.Group)
def create_group(
    group: schemas.GroupCreate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    _check_budget(group.budget_min, group.budget_max)
    db_group = models.Group(
        name=group.name,
        created_by_id=current_user.id,
        default_currency=group.default_currency,
        budget_min=group.budget_min,
        budget_max=group.budget_max
    )
    db.add(db_group)
    db.commit()
    db.refresh(db_group)

    # Creator administers the group
    db_member = models.GroupMember(group_id=db_group.id, user_id=current_user.id, role="admin")
    db.add(db_member)
    db.commit()

    return db_group


@router.get("", response_model=list[schemas.Group])
def read_groups(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    # Get groups where user is a member
    user_groups = db.query(models.Group).join(
        models.GroupMember,
        models.Group.id == models.GroupMember.group_id
    ).filter(models.GroupMember.user_id == current_user.id).all()
    return user_groups


@router.get("/{group_id}", response_model=schemas.GroupWithMembers)
def get_group(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    group = get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)

    members = [
        schemas.GroupMember(
            id=gm.id,
            user_id=user.id,
            full_name=user.full_name or user.email,
            email=user.email,
            role=gm.role,
            payment_handle=user.payment_handle
        )
        for gm, user in get_current_members(db, group_id)
    ]

    return schemas.GroupWithMembers(
        id=group.id,
        name=group.name,
        default_currency=group.default_currency,
        budget_min=group.budget_min,
        budget_max=group.budget_max,
        created_by_id=group.created_by_id,
        members=members
    )


@router.put("/{group_id}/budget", response_model=schemas.Group)
def update_group_budget(
    group_id: int,
    budget: schemas.GroupBudgetUpdate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    group = get_group_or_404(db, group_id)
    verify_group_admin(db, group_id, current_user.id)
    _check_budget(budget.budget_min, budget.budget_max)

    group.budget_min = budget.budget_min
    group.budget_max = budget.budget_max
    db.commit()
    db.refresh(group)
    return group
