"""CSV export of a group's expenses."""

import csv
import io
from typing import Iterator

from sqlalchemy.orm import Session

import models
from utils.currency import format_currency, to_major_units
from utils.display import get_user_display_name, get_user_names
from utils.ledger import ExpenseFilters, iter_expenses
from utils.validation import get_current_members


CSV_HEADER = ["Date", "Description", "Amount", "Category", "Paid By", "Status", "Splits", "Notes"]


def _render_row(values: list) -> str:
    buffer = io.StringIO()
    csv.writer(buffer).writerow(values)
    return buffer.getvalue()


def _describe_splits(expense: models.Expense, names: dict[int, str]) -> str:
    return "; ".join(
        f"{names.get(s.user_id, 'Unknown User')}: {format_currency(s.amount_owed, expense.currency)} "
        f"({'settled' if s.settled else 'pending'})"
        for s in expense.splits
    )


def iter_expenses_csv(db: Session, group_id: int, filters: ExpenseFilters = None) -> Iterator[str]:
    """
    Yield the CSV document line by line, ending with a TOTAL row.

    Reads only; an interrupted export leaves the ledger untouched and can simply be retried.
    """
    yield _render_row(CSV_HEADER)

    names = {user.id: get_user_display_name(user) for _, user in get_current_members(db, group_id)}

    total = 0
    count = 0
    for expense in iter_expenses(db, group_id, filters):
        missing = {expense.payer_id, *(s.user_id for s in expense.splits)} - names.keys()
        if missing:
            # Former members still appear on historical expenses
            names.update(get_user_names(db, missing))

        total += expense.amount
        count += 1
        yield _render_row([
            expense.date,
            expense.description,
            to_major_units(expense.amount),
            expense.category,
            names.get(expense.payer_id, "Unknown User"),
            expense.status,
            _describe_splits(expense, names),
            expense.notes or "",
        ])

    yield _render_row(["TOTAL", "", to_major_units(total), "", "", "", "", f"{count} expenses"])
