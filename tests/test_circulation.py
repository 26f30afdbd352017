from datetime import datetime

import pytest

from crud.book import create_book, get_book
from crud.issue import get_active_issues_for_member, get_issues
from crud.member import create_member
from crud.settings import save_settings
from errors import (
    AlreadyReturnedError,
    BookNotFoundError,
    ConstraintViolationError,
    IssueNotFoundError,
    LoanLimitReachedError,
    MemberNotFoundError,
    NoCopiesAvailableError,
)
from models import ISSUED, OVERDUE, RETURNED, Issue
from schemas import BookCreate, MemberCreate, SettingsUpdate
from services.circulation import (
    calculate_fine,
    compute_due_date,
    dashboard_stats,
    days_late,
    is_overdue,
    issue_book,
    return_book,
    sweep_overdue,
)

pytestmark = pytest.mark.anyio

JAN_1 = datetime(2025, 1, 1, 10, 0)


async def add_book(db, title="Dune", copies=1):
    return await create_book(db, BookCreate(
        title=title, author="Frank Herbert", category="Fiction", publication_year=1965, total_copies=copies,
    ))


async def add_member(db, name="Ada Lovelace", n=0):
    return await create_member(db, MemberCreate(name=name, email=f"member{n}@example.com", phone=f"555-01{n:02d}"))


# Pure rules

def test_compute_due_date():
    assert compute_due_date(JAN_1, 14) == datetime(2025, 1, 15, 10, 0)


def test_days_late_and_fine():
    due = datetime(2025, 1, 15)
    on_time = Issue(due_date=due, return_date=datetime(2025, 1, 14))
    late = Issue(due_date=due, return_date=datetime(2025, 1, 20))
    part_day = Issue(due_date=due, return_date=datetime(2025, 1, 15, 6, 0))

    assert days_late(on_time) == 0
    assert days_late(late) == 5
    assert days_late(part_day) == 1
    assert calculate_fine(late, 1.0) == 5.0
    assert calculate_fine(late, 0.25) == 1.25
    assert calculate_fine(on_time, 1.0) == 0.0


def test_is_overdue_only_while_unreturned():
    issue = Issue(due_date=datetime(2025, 1, 15), return_date=None)
    assert not is_overdue(issue, datetime(2025, 1, 15))
    assert is_overdue(issue, datetime(2025, 1, 16))
    issue.return_date = datetime(2025, 1, 20)
    assert not is_overdue(issue, datetime(2025, 1, 21))


# Workflow

async def test_issue_and_late_return(db):
    book = await add_book(db, copies=1)
    member = await add_member(db)

    issue = await issue_book(db, book.id, member.id, now=JAN_1)
    assert issue.status == ISSUED
    assert issue.due_date.date() == datetime(2025, 1, 15).date()
    assert issue.book_title == "Dune"
    assert issue.member_name == "Ada Lovelace"
    assert (await get_book(db, book.id)).available_copies == 0

    returned = await return_book(db, issue.id, now=datetime(2025, 1, 20))
    assert returned.status == OVERDUE
    assert returned.return_date == datetime(2025, 1, 20)
    assert (await get_book(db, book.id)).available_copies == 1


async def test_return_on_time(db):
    book = await add_book(db, copies=2)
    member = await add_member(db)
    issue = await issue_book(db, book.id, member.id, now=JAN_1)

    returned = await return_book(db, issue.id, now=datetime(2025, 1, 10))
    assert returned.status == RETURNED
    assert (await get_book(db, book.id)).available_copies == 2


async def test_explicit_due_date(db):
    book = await add_book(db, copies=2)
    member = await add_member(db)
    due = datetime(2025, 1, 3, 23, 59, 59)
    issue = await issue_book(db, book.id, member.id, due_date=due, now=JAN_1)
    assert issue.due_date == due

    with pytest.raises(ConstraintViolationError):
        await issue_book(db, book.id, member.id, due_date=datetime(2024, 12, 31), now=JAN_1)


async def test_no_copies_available(db):
    book = await add_book(db, copies=1)
    ada = await add_member(db)
    alan = await add_member(db, "Alan Turing", 1)
    await issue_book(db, book.id, ada.id, now=JAN_1)

    with pytest.raises(NoCopiesAvailableError):
        await issue_book(db, book.id, alan.id, now=JAN_1)
    assert len(await get_issues(db)) == 1


async def test_loan_limit(db):
    await save_settings(db, SettingsUpdate(max_books_per_member=2))
    member = await add_member(db)
    books = [await add_book(db, f"Book {n}") for n in range(3)]

    await issue_book(db, books[0].id, member.id, now=JAN_1)
    await issue_book(db, books[1].id, member.id, now=JAN_1)
    with pytest.raises(LoanLimitReachedError):
        await issue_book(db, books[2].id, member.id, now=JAN_1)
    assert (await get_book(db, books[2].id)).available_copies == 1


async def test_overdue_loans_count_toward_limit(db):
    await save_settings(db, SettingsUpdate(max_books_per_member=1))
    member = await add_member(db)
    first = await add_book(db, "First")
    second = await add_book(db, "Second")

    await issue_book(db, first.id, member.id, now=JAN_1)
    await sweep_overdue(db, now=datetime(2025, 2, 1))
    with pytest.raises(LoanLimitReachedError):
        await issue_book(db, second.id, member.id, now=datetime(2025, 2, 1))


async def test_missing_records(db):
    book = await add_book(db)
    member = await add_member(db)
    with pytest.raises(BookNotFoundError):
        await issue_book(db, "missing", member.id)
    with pytest.raises(MemberNotFoundError):
        await issue_book(db, book.id, "missing")
    with pytest.raises(IssueNotFoundError):
        await return_book(db, "missing")


async def test_return_twice(db):
    book = await add_book(db)
    member = await add_member(db)
    issue = await issue_book(db, book.id, member.id, now=JAN_1)
    await return_book(db, issue.id, now=datetime(2025, 1, 5))

    with pytest.raises(AlreadyReturnedError):
        await return_book(db, issue.id, now=datetime(2025, 1, 6))
    assert (await get_book(db, book.id)).available_copies == 1


async def test_sweep_overdue(db):
    book = await add_book(db, copies=2)
    member = await add_member(db)
    issue = await issue_book(db, book.id, member.id, now=JAN_1)

    assert await sweep_overdue(db, now=datetime(2025, 1, 10)) == 0
    assert await sweep_overdue(db, now=datetime(2025, 1, 16)) == 1
    assert await sweep_overdue(db, now=datetime(2025, 1, 17)) == 0
    assert issue.status == OVERDUE
    assert len(await get_active_issues_for_member(db, member.id)) == 1

    returned = await return_book(db, issue.id, now=datetime(2025, 1, 18))
    assert returned.status == OVERDUE
    assert (await get_book(db, book.id)).available_copies == 2


async def test_dashboard_stats(db):
    dune = await add_book(db, copies=2)
    await add_book(db, "Cosmos", copies=1)
    ada = await add_member(db)
    alan = await add_member(db, "Alan Turing", 1)

    late = await issue_book(db, dune.id, ada.id, now=JAN_1)
    done = await issue_book(db, dune.id, alan.id, now=JAN_1)
    await return_book(db, done.id, now=datetime(2025, 1, 5))

    stats = await dashboard_stats(db, now=datetime(2025, 2, 1))
    assert stats.total_books == 2
    assert stats.total_copies == 3
    assert stats.total_members == 2
    assert stats.books_available == 2
    assert stats.books_issued == 1
    assert stats.overdue_count == 1
    assert stats.total_issues == 2
    assert stats.total_returns == 1
    assert late.return_date is None
