"""Balances router: member balances, group summary, analytics and settlement suggestions."""

from typing import Annotated, Literal
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils.analytics import compute_analytics
from utils.balances import compute_balances, compute_summary
from utils.currency import format_currency
from utils.display import build_payment_link, get_user_display_name
from utils.settlement import plan_settlements
from utils.validation import get_current_members, get_group_or_404, verify_group_membership


router = APIRouter(prefix="/groups/{group_id}/expenses", tags=["balances"])


@router.get("/balances", response_model=list[schemas.Balance])
def get_group_balances(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)
    return compute_balances(db, group_id)


@router.get("/summary", response_model=schemas.ExpenseSummary)
def get_expense_summary(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)
    return compute_summary(db, group_id)


@router.get("/analytics", response_model=schemas.ExpenseAnalytics)
def get_expense_analytics(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    period: Literal["week", "month", "year"] = "month"
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)
    return compute_analytics(db, group_id, period)


@router.get("/settlements", response_model=list[schemas.SettlementSuggestion])
def get_settlement_suggestions(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    """Suggest who should pay whom so every balance reaches zero. Advisory only."""
    group = get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)

    currency = group.default_currency or "INR"
    users = {user.id: user for _, user in get_current_members(db, group_id)}
    transfers = plan_settlements(compute_balances(db, group_id))

    result = []
    for transfer in transfers:
        debtor = users.get(transfer.from_user_id)
        creditor = users.get(transfer.to_user_id)
        from_name = get_user_display_name(debtor)
        to_name = get_user_display_name(creditor)
        result.append(schemas.SettlementSuggestion(
            from_user_id=transfer.from_user_id,
            from_name=from_name,
            to_user_id=transfer.to_user_id,
            to_name=to_name,
            amount=transfer.amount,
            currency=currency,
            description=f"{from_name} should pay {format_currency(transfer.amount, currency)} to {to_name}",
            payment_link=build_payment_link(
                creditor.payment_handle if creditor else None,
                to_name,
                transfer.amount,
                f"{group.name} settlement",
                currency
            )
        ))

    return result
