# crud/issue.py — loan records; issue/return themselves live in services.circulation
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import IssueNotFoundError
from models import Issue
from services.filters import ALL, filter_issues


async def get_issues(
    db: AsyncSession,
    q: str = "",
    status: str = ALL,
    member_id: Optional[str] = None,
    book_id: Optional[str] = None,
) -> List[Issue]:
    result = await db.execute(select(Issue).order_by(Issue.issue_date.desc()))
    return filter_issues(result.scalars().all(), q=q, status=status, member_id=member_id, book_id=book_id)


async def get_issue(db: AsyncSession, issue_id: str) -> Issue:
    issue = await db.get(Issue, issue_id)
    if issue is None:
        raise IssueNotFoundError(f"Issue record not found: id={issue_id}")
    return issue


async def get_active_issues_for_member(db: AsyncSession, member_id: str) -> List[Issue]:
    """Issues the member has not returned yet, overdue ones included."""
    result = await db.execute(
        select(Issue).where(Issue.member_id == member_id, Issue.return_date.is_(None))
    )
    return list(result.scalars().all())
