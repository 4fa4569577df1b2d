"""Spending analytics for a group over a trailing window."""

from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

import models
import schemas
from utils.balances import percent_of
from utils.display import get_user_names
from utils.validation import get_group_or_404


PERIOD_DAYS = {
    "week": 7,
    "month": 30,
    "year": 365,
}


def compute_analytics(
    db: Session,
    group_id: int,
    period: str = "month",
    today: Optional[date] = None
) -> schemas.ExpenseAnalytics:
    """
    Aggregate spending for expenses dated inside the window.

    Unknown periods fall back to a month.
    """
    get_group_or_404(db, group_id)
    if period not in PERIOD_DAYS:
        period = "month"
    days = PERIOD_DAYS[period]
    end = today or date.today()
    # Both ends inclusive, so a week is today and the six days before it
    start = end - timedelta(days=days - 1)

    expenses = db.query(models.Expense).filter(
        models.Expense.group_id == group_id,
        models.Expense.date >= start.isoformat(),
        models.Expense.date <= end.isoformat()
    ).all()

    total = 0
    daily = {}
    by_category = {}
    by_payer = {}
    for expense in expenses:
        total += expense.amount
        daily[expense.date] = daily.get(expense.date, 0) + expense.amount
        by_category[expense.category] = by_category.get(expense.category, 0) + expense.amount
        by_payer[expense.payer_id] = by_payer.get(expense.payer_id, 0) + expense.amount

    category_distribution = sorted(
        (
            schemas.CategoryShare(category=c, amount=a, percentage=percent_of(a, total, "0.01"))
            for c, a in by_category.items()
        ),
        key=lambda c: (-c.amount, c.category),
    )

    names = get_user_names(db, by_payer.keys())
    member_contributions = sorted(
        (
            schemas.MemberContribution(
                user_id=uid,
                full_name=names.get(uid, "Unknown User"),
                amount=a,
                percentage=percent_of(a, total, "0.01"),
            )
            for uid, a in by_payer.items()
        ),
        key=lambda m: (-m.amount, m.user_id),
    )

    return schemas.ExpenseAnalytics(
        period=period,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        total_spent=total,
        average_per_day=round(total / days, 2),
        most_expensive_category=category_distribution[0] if category_distribution else None,
        top_spender=member_contributions[0] if member_contributions else None,
        daily_breakdown=[schemas.AmountByDate(date=d, amount=a) for d, a in sorted(daily.items())],
        category_distribution=category_distribution,
        member_contributions=member_contributions,
    )
