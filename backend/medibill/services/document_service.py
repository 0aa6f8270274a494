# Overview: Receipt number allocation.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ReceiptSequence
from ..time_utils import receipt_day

RECEIPT_PREFIX = "RCP"


def format_receipt_number(day: str, number: int) -> str:
    # Three digits minimum; widens past 999 rather than wrapping
    return f"{RECEIPT_PREFIX}-{day}-{number:03d}"


def _bump(day: str) -> int | None:
    stmt = (
        update(ReceiptSequence)
        .where(ReceiptSequence.day == day)
        .values(next_number=ReceiptSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(ReceiptSequence.next_number)
        .filter_by(day=day)
        .scalar()
    )
    return current - 1


def next_receipt_number(now: datetime | None = None) -> str:
    """
    Atomically allocate the next RCP-YYYYMMDD-NNN number.

    Runs inside the caller's transaction. The first sale of a day inserts the
    counter row under a savepoint; losing that insert race falls back to the
    increment.
    """
    day = receipt_day(now)

    number = _bump(day)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(ReceiptSequence(day=day, next_number=2))
            number = 1
        except IntegrityError:
            number = _bump(day)
            if number is None:
                raise
    return format_receipt_number(day, number)
