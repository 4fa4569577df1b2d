"""
Display utilities for member names and payment links
"""
from typing import Iterable, Optional
from urllib.parse import urlencode, quote

from sqlalchemy.orm import Session
import models
from utils.currency import to_major_units


def get_user_display_name(user: Optional[models.User]) -> str:
    """Full name if set, otherwise the email."""
    if not user:
        return "Unknown User"
    return user.full_name or user.email


def get_user_names(db: Session, user_ids: Iterable[int]) -> dict[int, str]:
    """
    Batch-fetch display names.

    Args:
        db: Database session
        user_ids: IDs to look up; duplicates are fine

    Returns:
        Mapping of user ID to display name. Unknown IDs are absent.
    """
    ids = set(user_ids)
    if not ids:
        return {}
    users = db.query(models.User).filter(models.User.id.in_(ids)).all()
    return {u.id: get_user_display_name(u) for u in users}


def build_payment_link(
    payment_handle: Optional[str],
    payee_name: str,
    amount_minor: int,
    note: str,
    currency: str = "INR"
) -> Optional[str]:
    """
    Build a UPI deep link for a suggested payment.
    Example: upi://pay?pa=alice%40upi&pn=Alice&am=100.00&cu=INR&tn=Trip%20settlement
    """
    if not payment_handle:
        return None
    query = urlencode({
        "pa": payment_handle,
        "pn": payee_name,
        "am": to_major_units(amount_minor),
        "cu": currency,
        "tn": note,
    }, quote_via=quote)
    return f"upi://pay?{query}"
