"""Expenses router: create, read, update, re-split, settle and delete expenses."""

from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils import ledger
from utils.display import get_user_names
from utils.export import iter_expenses_csv
from utils.validation import get_group_or_404, verify_group_membership


router = APIRouter(tags=["expenses"])


def expense_to_schema(expense: models.Expense, names: dict[int, str]) -> schemas.ExpenseWithSplits:
    return schemas.ExpenseWithSplits(
        id=expense.id,
        group_id=expense.group_id,
        description=expense.description,
        amount=expense.amount,
        currency=expense.currency,
        category=expense.category,
        payer_id=expense.payer_id,
        split_type=expense.split_type,
        status=expense.status,
        date=expense.date,
        notes=expense.notes,
        receipt_image=expense.receipt_image,
        created_by_id=expense.created_by_id,
        created_at=expense.created_at,
        splits=[
            schemas.ExpenseSplitDetail(
                user_id=split.user_id,
                user_name=names.get(split.user_id, "Unknown User"),
                amount_owed=split.amount_owed,
                percentage=split.percentage,
                settled=split.settled,
                settled_at=split.settled_at
            )
            for split in expense.splits
        ]
    )


def _with_names(db: Session, expense: models.Expense) -> schemas.ExpenseWithSplits:
    names = get_user_names(db, [s.user_id for s in expense.splits])
    return expense_to_schema(expense, names)


@router.post("/groups/{group_id}/expenses", response_model=schemas.ExpenseWithSplits)
def create_expense(
    group_id: int,
    expense: schemas.ExpenseCreate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    db_expense = ledger.create_expense(db, group_id, current_user.id, expense)
    return _with_names(db, db_expense)


@router.get("/groups/{group_id}/expenses", response_model=list[schemas.ExpenseWithSplits])
def list_group_expenses(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    category: Optional[schemas.Category] = None,
    status: Optional[schemas.ExpenseStatus] = None,
    search: Optional[str] = None,
    date_start: Optional[str] = None,
    date_end: Optional[str] = None
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)

    filters = ledger.ExpenseFilters(
        category=category,
        status=status,
        search=search,
        date_start=date_start,
        date_end=date_end
    )
    expenses = list(ledger.iter_expenses(db, group_id, filters))

    # Batch fetch names once for the whole page
    names = get_user_names(db, {s.user_id for e in expenses for s in e.splits})
    return [expense_to_schema(e, names) for e in expenses]


@router.get("/groups/{group_id}/expenses/export.csv")
def export_group_expenses(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)

    # Rendered before the response starts so the session is not used after teardown
    lines = list(iter_expenses_csv(db, group_id))
    return StreamingResponse(
        iter(lines),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=expenses-{group_id}.csv"}
    )


@router.get("/expenses/{expense_id}", response_model=schemas.ExpenseWithSplits)
def get_expense(
    expense_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    expense = ledger.get_expense(db, expense_id, current_user.id)
    return _with_names(db, expense)


@router.put("/expenses/{expense_id}", response_model=schemas.ExpenseWithSplits)
def update_expense(
    expense_id: int,
    expense_update: schemas.ExpenseUpdate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    expense = ledger.update_expense(db, expense_id, current_user.id, expense_update)
    return _with_names(db, expense)


@router.post("/expenses/{expense_id}/split", response_model=schemas.ExpenseWithSplits)
def recreate_expense_split(
    expense_id: int,
    split_request: schemas.SplitRequest,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    expense = ledger.recreate_split(db, expense_id, current_user.id, split_request)
    return _with_names(db, expense)


@router.put("/expenses/{expense_id}/settle", response_model=schemas.ExpenseWithSplits)
def settle_expense(
    expense_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    expense = ledger.bulk_settle(db, expense_id, current_user.id)
    return _with_names(db, expense)


@router.put("/expenses/{expense_id}/settle/{member_id}", response_model=schemas.ExpenseWithSplits)
def settle_participant(
    expense_id: int,
    member_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    expense = ledger.record_settlement(db, expense_id, member_id, current_user.id)
    return _with_names(db, expense)


@router.put("/expenses/{expense_id}/status", response_model=schemas.ExpenseWithSplits)
def update_expense_status(
    expense_id: int,
    status_update: schemas.ExpenseStatusUpdate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    expense = ledger.force_status(db, expense_id, status_update.status, current_user.id)
    return _with_names(db, expense)


@router.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    ledger.delete_expense(db, expense_id, current_user.id)
    return Response(status_code=204)
