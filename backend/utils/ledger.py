"""Expense ledger: create, update, re-split, settle and delete group expenses.

Every write commits once. The Expense row carries a version column, so two
writers racing on the same expense cannot both win: the loser's UPDATE matches
no row, SQLAlchemy raises StaleDataError and we report a retryable Conflict.
"""

import logging
from dataclasses import dataclass
from datetime import date as date_cls
from typing import Iterator, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

import models
import schemas
from utils.errors import Conflict, NotFound, PermissionDenied, ValidationError
from utils.splits import (
    EqualSplit,
    SplitEntry,
    SplitShare,
    build_split_method,
    compute_splits,
    equal_split,
    percentage_split,
    rescale_split,
    split_participants,
)
from utils.validation import (
    get_current_members,
    get_group_or_404,
    is_group_admin,
    validate_expense_participants,
    verify_group_membership,
)


logger = logging.getLogger(__name__)

PAGE_SIZE = 100


@dataclass
class ExpenseFilters:
    category: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None


def normalize_date(date_str: Optional[str]) -> str:
    """Normalize date string to YYYY-MM-DD format for consistent sorting."""
    if not date_str:
        return date_cls.today().isoformat()
    # Handle ISO format with time component (e.g., 2025-12-27T00:00:00.000Z)
    if 'T' in date_str:
        date_str = date_str.split('T')[0]
    try:
        return date_cls.fromisoformat(date_str).isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date '{date_str}', expected YYYY-MM-DD")


def derive_status(splits) -> str:
    """pending if nobody settled, settled if everybody did, partially_settled otherwise."""
    settled = [s.settled for s in splits]
    if settled and all(settled):
        return "settled"
    if any(settled):
        return "partially_settled"
    return "pending"


def get_expense_or_404(db: Session, expense_id: int) -> models.Expense:
    expense = db.query(models.Expense).filter(models.Expense.id == expense_id).first()
    if not expense:
        raise NotFound("Expense not found")
    return expense


def _touch(expense: models.Expense) -> None:
    # Dirties the row so the version check runs even when only splits change
    expense.updated_at = models.utcnow()


def _commit(db: Session, expense: models.Expense, refresh: bool = True) -> None:
    expense_id = expense.id
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning(f"Concurrent modification of expense {expense_id} rejected")
        raise Conflict("Expense was modified by another request, please retry")
    if refresh:
        db.refresh(expense)


def _current_shares(expense: models.Expense) -> list[SplitShare]:
    return [SplitShare(user_id=s.user_id, amount=s.amount_owed, percentage=s.percentage) for s in expense.splits]


def _replace_splits(db: Session, expense: models.Expense, shares: list[SplitShare]) -> None:
    expense.splits.clear()
    # Old rows must be gone before new ones reuse their (expense, user) keys
    db.flush()
    for share in shares:
        expense.splits.append(models.ExpenseSplit(
            user_id=share.user_id,
            amount_owed=share.amount,
            percentage=share.percentage,
            settled=False,
        ))


def _ensure_unsettled(expense: models.Expense, action: str) -> None:
    if any(s.settled for s in expense.splits):
        raise Conflict(
            f"Cannot {action} expense {expense.id}: some participants have already settled. "
            "Reset its status to pending first."
        )


def _can_manage(db: Session, expense: models.Expense, actor_id: int) -> bool:
    return (
        expense.created_by_id == actor_id
        or expense.payer_id == actor_id
        or is_group_admin(db, expense.group_id, actor_id)
    )


def _require_manager(db: Session, expense: models.Expense, actor_id: int, action: str) -> None:
    verify_group_membership(db, expense.group_id, actor_id)
    if not _can_manage(db, expense, actor_id):
        raise PermissionDenied(f"Only the expense creator, payer or a group admin can {action} this expense")


def create_expense(db: Session, group_id: int, actor_id: int, data: schemas.ExpenseCreate) -> models.Expense:
    group = get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, actor_id)

    payer_id = data.paid_by if data.paid_by is not None else actor_id
    entries = [SplitEntry(user_id=e.user_id, amount=e.amount, percentage=e.percentage) for e in data.custom_splits]
    method = build_split_method(data.split_method, data.split_between, entries)

    # No explicit participants means everyone currently in the group
    if isinstance(method, EqualSplit) and not method.participant_ids:
        method = EqualSplit(participant_ids=tuple(gm.user_id for gm, _ in get_current_members(db, group_id)))

    validate_expense_participants(db, group_id, payer_id, split_participants(method))
    shares = compute_splits(data.amount, method, group.default_currency)

    db_expense = models.Expense(
        group_id=group_id,
        description=data.description,
        amount=data.amount,
        currency=group.default_currency or "INR",
        category=data.category,
        payer_id=payer_id,
        split_type=method.name,
        status="pending",
        date=normalize_date(data.date),
        notes=data.notes,
        receipt_image=data.receipt_image,
        created_by_id=actor_id,
    )
    for share in shares:
        db_expense.splits.append(models.ExpenseSplit(
            user_id=share.user_id,
            amount_owed=share.amount,
            percentage=share.percentage,
            settled=False,
        ))
    db.add(db_expense)
    db.commit()
    db.refresh(db_expense)

    logger.info(
        f"Created expense {db_expense.id} in group {group_id}: {data.amount} {db_expense.currency} "
        f"{method.name} split between {len(shares)}"
    )
    return db_expense


def get_expense(db: Session, expense_id: int, actor_id: int) -> models.Expense:
    expense = get_expense_or_404(db, expense_id)
    verify_group_membership(db, expense.group_id, actor_id)
    return expense


def update_expense(db: Session, expense_id: int, actor_id: int, patch: schemas.ExpenseUpdate) -> models.Expense:
    """
    Apply a partial update.

    Changing the amount recomputes the splits with the existing method and
    participants, which is refused once anybody has settled.
    """
    expense = get_expense_or_404(db, expense_id)
    _require_manager(db, expense, actor_id, "edit")

    # Validate everything before touching the session
    new_date = normalize_date(patch.date) if patch.date is not None else None
    shares = None
    if patch.amount is not None and patch.amount != expense.amount:
        _ensure_unsettled(expense, "change the amount of")
        current = _current_shares(expense)
        if expense.split_type == "EQUAL":
            shares = equal_split(patch.amount, [s.user_id for s in current])
        elif expense.split_type == "PERCENTAGE":
            shares = percentage_split(
                patch.amount,
                [SplitEntry(user_id=s.user_id, percentage=s.percentage) for s in current]
            )
        else:
            shares = rescale_split(expense.amount, current, patch.amount)

    if shares is not None:
        _replace_splits(db, expense, shares)
        expense.amount = patch.amount
    if patch.description is not None:
        expense.description = patch.description
    if patch.category is not None:
        expense.category = patch.category
    if new_date is not None:
        expense.date = new_date
    if patch.notes is not None:
        expense.notes = patch.notes
    if patch.receipt_image is not None:
        expense.receipt_image = patch.receipt_image

    _touch(expense)
    _commit(db, expense)
    logger.info(f"Updated expense {expense.id}")
    return expense


def recreate_split(db: Session, expense_id: int, actor_id: int, request: schemas.SplitRequest) -> models.Expense:
    """Replace every split of an unsettled expense with a freshly computed set."""
    expense = get_expense_or_404(db, expense_id)
    _require_manager(db, expense, actor_id, "re-split")
    _ensure_unsettled(expense, "re-split")

    entries = [SplitEntry(user_id=e.user_id, amount=e.amount, percentage=e.percentage) for e in request.entries]
    method = build_split_method(request.split_method, request.split_between, entries)
    validate_expense_participants(db, expense.group_id, expense.payer_id, split_participants(method))
    shares = compute_splits(expense.amount, method, expense.currency)

    _replace_splits(db, expense, shares)
    expense.split_type = method.name
    expense.status = "pending"
    _touch(expense)
    _commit(db, expense)
    logger.info(f"Re-split expense {expense.id} as {method.name} between {len(shares)}")
    return expense


def record_settlement(db: Session, expense_id: int, member_id: int, actor_id: int) -> models.Expense:
    """Mark one participant's share as paid. Settling twice is a no-op."""
    expense = get_expense_or_404(db, expense_id)
    _require_manager(db, expense, actor_id, "settle")

    split = next((s for s in expense.splits if s.user_id == member_id), None)
    if split is None:
        raise NotFound(f"Member {member_id} is not a participant of this expense")
    if split.settled:
        return expense

    split.settled = True
    split.settled_at = models.utcnow()
    expense.status = derive_status(expense.splits)
    _touch(expense)
    _commit(db, expense)
    logger.info(f"Member {member_id} settled on expense {expense.id}, status now {expense.status}")
    return expense


def _settle_all(expense: models.Expense) -> None:
    now = models.utcnow()
    for split in expense.splits:
        if not split.settled:
            split.settled = True
            split.settled_at = now
    expense.status = "settled"


def bulk_settle(db: Session, expense_id: int, actor_id: int) -> models.Expense:
    expense = get_expense_or_404(db, expense_id)
    _require_manager(db, expense, actor_id, "settle")

    _settle_all(expense)
    _touch(expense)
    _commit(db, expense)
    logger.info(f"Expense {expense.id} settled for all participants")
    return expense


def force_status(db: Session, expense_id: int, status: str, actor_id: int) -> models.Expense:
    """
    Administrative override.

    'settled' settles everyone, 'pending' clears every settlement. The
    intermediate state only ever follows from individual settlements.
    """
    expense = get_expense_or_404(db, expense_id)
    _require_manager(db, expense, actor_id, "change the status of")

    if status == "settled":
        _settle_all(expense)
    elif status == "pending":
        for split in expense.splits:
            split.settled = False
            split.settled_at = None
        expense.status = "pending"
    elif status == "partially_settled":
        raise ValidationError(
            "Status 'partially_settled' cannot be set directly; settle individual participants instead"
        )
    else:
        raise ValidationError(f"Invalid status '{status}'")

    _touch(expense)
    _commit(db, expense)
    logger.info(f"Status of expense {expense.id} forced to {status} by user {actor_id}")
    return expense


def delete_expense(db: Session, expense_id: int, actor_id: int) -> None:
    expense = get_expense_or_404(db, expense_id)
    group_id = expense.group_id
    verify_group_membership(db, group_id, actor_id)
    if expense.created_by_id != actor_id and not is_group_admin(db, group_id, actor_id):
        raise PermissionDenied("Only the expense creator or a group admin can delete this expense")

    db.delete(expense)
    _commit(db, expense, refresh=False)
    logger.info(f"Deleted expense {expense_id} from group {group_id}")


def iter_expenses(db: Session, group_id: int, filters: Optional[ExpenseFilters] = None) -> Iterator[models.Expense]:
    """
    Lazily yield a group's expenses, newest first, a page at a time.

    Each call starts a fresh query, so the sequence can be iterated again.
    """
    filters = filters or ExpenseFilters()
    query = db.query(models.Expense).filter(models.Expense.group_id == group_id)

    if filters.category:
        query = query.filter(models.Expense.category == filters.category)
    if filters.status:
        query = query.filter(models.Expense.status == filters.status)
    if filters.search:
        # Match % and _ literally
        term = filters.search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{term}%"
        query = query.filter(or_(
            models.Expense.description.ilike(pattern, escape="\\"),
            models.Expense.notes.ilike(pattern, escape="\\"),
        ))
    if filters.date_start:
        query = query.filter(models.Expense.date >= normalize_date(filters.date_start))
    if filters.date_end:
        query = query.filter(models.Expense.date <= normalize_date(filters.date_end))

    query = query.order_by(models.Expense.date.desc(), models.Expense.id.desc())

    offset = 0
    while True:
        page = query.limit(PAGE_SIZE).offset(offset).all()
        yield from page
        if len(page) < PAGE_SIZE:
            return
        offset += PAGE_SIZE
