"""Balance and summary projections over a group's expenses.

Nothing here is cached: every call recomputes from the stored expenses, so
concurrent writes to other expenses never leave a stale aggregate behind.
"""

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

import models
import schemas
from utils.settlement import SETTLEMENT_TOLERANCE
from utils.validation import get_current_members, get_group_or_404


RECENT_EXPENSES = 5


def _group_expenses(db: Session, group_id: int) -> list[models.Expense]:
    return db.query(models.Expense).filter(models.Expense.group_id == group_id).all()


def _balance_status(net: int) -> str:
    if net > 0:
        return "owed"
    if net < 0:
        return "owes"
    return "settled"


def compute_balances(db: Session, group_id: int) -> list[schemas.Balance]:
    """
    Net balance for every current member, in membership order.

    paid is what the member fronted, owed_share is the sum of their splits
    (their own share of expenses they paid included), net = paid - owed_share.
    Former members are left out; their historical splits stay untouched.
    """
    get_group_or_404(db, group_id)
    members = get_current_members(db, group_id)

    paid = {gm.user_id: 0 for gm, _ in members}
    owed = {gm.user_id: 0 for gm, _ in members}
    pending = {gm.user_id: 0 for gm, _ in members}
    expenses_paid = {gm.user_id: 0 for gm, _ in members}
    involved = {gm.user_id: 0 for gm, _ in members}

    for expense in _group_expenses(db, group_id):
        if expense.payer_id in paid:
            paid[expense.payer_id] += expense.amount
            expenses_paid[expense.payer_id] += 1

        for split in expense.splits:
            if split.user_id not in owed:
                continue
            owed[split.user_id] += split.amount_owed
            if split.user_id == expense.payer_id:
                continue
            involved[split.user_id] += 1
            if not split.settled and split.amount_owed > 0:
                pending[split.user_id] += 1

    return [
        schemas.Balance(
            user_id=user.id,
            full_name=user.full_name or user.email,
            paid=paid[user.id],
            owed_share=owed[user.id],
            net=paid[user.id] - owed[user.id],
            pending_payments=pending[user.id],
            status=_balance_status(paid[user.id] - owed[user.id]),
            expenses_paid=expenses_paid[user.id],
            expenses_involved=involved[user.id],
        )
        for _, user in members
    ]


def percent_of(part: int, whole: int, places: str) -> float:
    if not whole:
        return 0.0
    value = Decimal(part) * 100 / Decimal(whole)
    return float(value.quantize(Decimal(places), rounding=ROUND_HALF_UP))


def compute_summary(db: Session, group_id: int) -> schemas.ExpenseSummary:
    group = get_group_or_404(db, group_id)
    member_count = len(get_current_members(db, group_id))
    expenses = _group_expenses(db, group_id)

    total = sum(e.amount for e in expenses)

    categories = {}
    for expense in expenses:
        category = expense.category or "other"
        entry = categories.setdefault(category, {"total": 0, "count": 0})
        entry["total"] += expense.amount
        entry["count"] += 1

    breakdown = sorted(
        (
            schemas.CategoryBreakdown(
                category=category,
                total=data["total"],
                count=data["count"],
                percentage=percent_of(data["total"], total, "0.1"),
            )
            for category, data in categories.items()
        ),
        key=lambda b: (-b.total, b.category),
    )

    share_per_person = 0
    if member_count:
        share_per_person = int((Decimal(total) / member_count).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    budget_used = None
    if group.budget_max:
        budget_used = percent_of(total, group.budget_max, "0.01")

    # False once departed members leave unmatched shares behind
    is_balanced = abs(sum(b.net for b in compute_balances(db, group_id))) <= SETTLEMENT_TOLERANCE

    recent = sorted(expenses, key=lambda e: (e.date, e.id), reverse=True)[:RECENT_EXPENSES]

    return schemas.ExpenseSummary(
        group_id=group.id,
        total_expenses=total,
        expense_count=len(expenses),
        member_count=member_count,
        share_per_person=share_per_person,
        category_breakdown=breakdown,
        budget=schemas.GroupBudget(
            budget_min=group.budget_min,
            budget_max=group.budget_max,
            currency=group.default_currency or "INR",
        ),
        budget_used=budget_used,
        is_balanced=is_balanced,
        recent_expenses=[
            schemas.RecentExpense(
                id=e.id,
                description=e.description,
                amount=e.amount,
                category=e.category,
                date=e.date,
                status=e.status,
            )
            for e in recent
        ],
    )
