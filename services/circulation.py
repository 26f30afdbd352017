"""Issue / return workflow and the numbers derived from it.

Rules enforced:
    (1) A book can only be issued while it has an available copy
    (2) A member holds at most ``max_books_per_member`` unreturned books
    (3) Loans are due ``default_loan_duration`` days after issue
    (4) A return after the due date closes the issue as "overdue"

Issue and return each touch two records (the issue and the book's copy
counter); both changes are committed in one transaction so a failure
leaves neither applied.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crud.book import get_book
from crud.issue import get_active_issues_for_member, get_issue
from crud.member import get_member
from crud.settings import get_settings
from database import commit
from errors import (
    AlreadyReturnedError,
    ConstraintViolationError,
    LoanLimitReachedError,
    NoCopiesAvailableError,
)
from models import ISSUED, OVERDUE, RETURNED, Book, Issue, Member, utcnow
from schemas import DashboardStats

logger = logging.getLogger(__name__)


# Pure rules

def compute_due_date(issue_date: datetime, loan_duration_days: int) -> datetime:
    return issue_date + timedelta(days=loan_duration_days)


def adjusted_copies(book: Book, change: int) -> int:
    """Available copies after ``change``, clamped to [0, total_copies]."""
    return max(0, min(book.total_copies, book.available_copies + change))


def status_on_return(return_date: datetime, due_date: datetime) -> str:
    return RETURNED if return_date <= due_date else OVERDUE


def is_overdue(issue: Issue, now: Optional[datetime] = None) -> bool:
    """True while the issue is unreturned and past its due date."""
    now = now or utcnow()
    return issue.return_date is None and issue.due_date < now


def days_late(issue: Issue, now: Optional[datetime] = None) -> int:
    end = issue.return_date or now or utcnow()
    late = end - issue.due_date
    if late <= timedelta(0):
        return 0
    return math.ceil(late / timedelta(days=1))


def calculate_fine(issue: Issue, fine_per_day: float, now: Optional[datetime] = None) -> float:
    """Days late (rounded up) times the daily fine; 0.0 when on time."""
    return round(days_late(issue, now) * fine_per_day, 2)


# Workflow

async def issue_book(
    db: AsyncSession,
    book_id: str,
    member_id: str,
    due_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Issue:
    """
    Lend one copy of a book to a member.

    Raises:
        BookNotFoundError / MemberNotFoundError
        NoCopiesAvailableError: every copy is out
        LoanLimitReachedError: member is at the configured maximum
        ConstraintViolationError: due date earlier than the issue date
    """
    now = now or utcnow()
    logger.info("issue_book called | book_id=%s member_id=%s", book_id, member_id)

    book = await get_book(db, book_id)
    member = await get_member(db, member_id)
    settings = await get_settings(db)

    if book.available_copies <= 0:
        raise NoCopiesAvailableError(f"No copies available for '{book.title}'")

    active = await get_active_issues_for_member(db, member_id)
    if len(active) >= settings.max_books_per_member:
        raise LoanLimitReachedError(
            f"Member has reached maximum book limit ({settings.max_books_per_member})"
        )

    if due_date is None:
        due_date = compute_due_date(now, settings.default_loan_duration)
    elif due_date.date() < now.date():
        raise ConstraintViolationError("Due date cannot be before the issue date")

    issue = Issue(
        book_id=book.id,
        member_id=member.id,
        book_title=book.title,
        member_name=member.name,
        issue_date=now,
        due_date=due_date,
        status=ISSUED,
    )
    db.add(issue)
    book.available_copies = adjusted_copies(book, -1)
    await commit(db)
    await db.refresh(issue)

    logger.info(
        "Book issued | issue_id=%s book_id=%s member_id=%s due=%s available=%s",
        issue.id, book.id, member.id, due_date.isoformat(), book.available_copies,
    )
    return issue


async def return_book(db: AsyncSession, issue_id: str, now: Optional[datetime] = None) -> Issue:
    """
    Close an issue and put the copy back on the shelf.

    An issue the sweeper already flagged overdue stays overdue.

    Raises:
        IssueNotFoundError
        AlreadyReturnedError
    """
    now = now or utcnow()
    logger.info("return_book called | issue_id=%s", issue_id)

    issue = await get_issue(db, issue_id)
    if issue.return_date is not None:
        raise AlreadyReturnedError(f"Book already returned: issue_id={issue_id}")

    issue.return_date = now
    issue.status = OVERDUE if issue.status == OVERDUE else status_on_return(now, issue.due_date)

    book = await db.get(Book, issue.book_id)
    if book is not None:
        book.available_copies = adjusted_copies(book, +1)
    else:
        logger.warning("Returned issue references a deleted book | issue_id=%s book_id=%s", issue_id, issue.book_id)

    await commit(db)
    await db.refresh(issue)
    logger.info("Book returned | issue_id=%s status=%s", issue.id, issue.status)
    return issue


async def sweep_overdue(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flip issued loans past their due date to overdue; returns how many changed."""
    now = now or utcnow()
    result = await db.execute(
        select(Issue).where(
            Issue.status == ISSUED,
            Issue.return_date.is_(None),
            Issue.due_date < now,
        )
    )
    issues = result.scalars().all()
    for issue in issues:
        issue.status = OVERDUE
    if issues:
        await commit(db)
        logger.info("Overdue sweep | flipped=%s", len(issues))
    return len(issues)


async def dashboard_stats(db: AsyncSession, now: Optional[datetime] = None) -> DashboardStats:
    now = now or utcnow()
    books = (await db.execute(select(Book))).scalars().all()
    issues = (await db.execute(select(Issue))).scalars().all()
    total_members = await db.scalar(select(func.count()).select_from(Member))

    return DashboardStats(
        total_books=len(books),
        total_copies=sum(b.total_copies for b in books),
        total_members=total_members or 0,
        books_available=sum(b.available_copies for b in books),
        books_issued=sum(1 for i in issues if i.is_active),
        overdue_count=sum(1 for i in issues if is_overdue(i, now)),
        total_issues=len(issues),
        total_returns=sum(1 for i in issues if i.return_date is not None),
    )
