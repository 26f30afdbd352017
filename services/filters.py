"""Search and filter helpers for book, member and issue lists.

Everything here is a pure function over already-loaded records: the lists
are small enough that a linear scan beats maintaining search indexes.
Records may be ORM rows or pydantic schemas, only attribute access is used.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, TypeVar

T = TypeVar("T")

ALL = "all"


def matches_text(query: Optional[str], *fields: Optional[str]) -> bool:
    """Case-insensitive substring match of query against any of the fields."""
    if not query or not query.strip():
        return True
    term = query.strip().lower()
    return any(term in field.lower() for field in fields if field)


def matches_choice(value: Optional[str], choice: Optional[str]) -> bool:
    """Equality match where an empty choice or "all" accepts everything."""
    if not choice or choice == ALL:
        return True
    return value == choice


def filter_books(
    books: Iterable[T],
    q: str = "",
    category: str = ALL,
    availability: str = ALL,
) -> List[T]:
    filtered: List[T] = []
    for b in books:
        if not matches_text(q, b.title, b.author, b.category, b.isbn):
            continue
        if not matches_choice(b.category, category):
            continue
        if availability == "available" and b.available_copies <= 0:
            continue
        if availability == "unavailable" and b.available_copies != 0:
            continue
        filtered.append(b)
    return filtered


def filter_members(members: Iterable[T], q: str = "") -> List[T]:
    return [
        m for m in members
        if matches_text(q, m.name, m.member_code, m.email, m.phone)
    ]


def filter_issues(
    issues: Iterable[T],
    q: str = "",
    status: str = ALL,
    member_id: Optional[str] = None,
    book_id: Optional[str] = None,
) -> List[T]:
    return [
        i for i in issues
        if matches_text(q, i.book_title, i.member_name)
        and matches_choice(i.status, status)
        and matches_choice(i.member_id, member_id)
        and matches_choice(i.book_id, book_id)
    ]
