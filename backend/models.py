from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    full_name = Column(String)
    payment_handle = Column(String, nullable=True)  # UPI id
    is_active = Column(Boolean, default=True)


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    default_currency = Column(String, default="INR")
    budget_min = Column(Integer, nullable=True)  # Stored in paise/smallest unit
    budget_max = Column(Integer, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"))


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    role = Column(String, default="member")  # 'admin' or 'member'
    joined_at = Column(DateTime, default=utcnow)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), index=True)
    description = Column(String)
    amount = Column(Integer)  # Stored in paise/smallest unit
    currency = Column(String, default="INR")
    category = Column(String, default="other", index=True)
    payer_id = Column(Integer, ForeignKey("users.id"), index=True)
    split_type = Column(String, default="EQUAL")  # EQUAL, PERCENTAGE, CUSTOM
    status = Column(String, default="pending", index=True)
    date = Column(String, index=True)  # ISO date string
    notes = Column(String, nullable=True)
    receipt_image = Column(String, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    version = Column(Integer, nullable=False)

    splits = relationship(
        "ExpenseSplit",
        order_by="ExpenseSplit.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Compare-and-swap on every UPDATE of the row
    __mapper_args__ = {"version_id_col": version}


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"
    __table_args__ = (UniqueConstraint("expense_id", "user_id", name="uq_expense_split_user"),)

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    amount_owed = Column(Integer)  # The amount this user owes
    percentage = Column(Float, nullable=True)
    settled = Column(Boolean, default=False)
    settled_at = Column(DateTime, nullable=True)
