# crud/member.py — members, email / phone / member code kept unique
import logging
import random
import time
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import commit
from errors import ActiveLoansError, DuplicateMemberError, MemberNotFoundError
from models import Issue, Member
from schemas import MemberCreate, MemberUpdate
from services.filters import filter_members

logger = logging.getLogger(__name__)

MEMBER_CODE_PREFIX = "LIB"


def generate_member_code() -> str:
    """LIB + last six digits of the epoch millis + three random digits."""
    timestamp = str(int(time.time() * 1000))[-6:]
    return f"{MEMBER_CODE_PREFIX}{timestamp}{random.randint(0, 999):03d}"


async def get_members(db: AsyncSession, q: str = "") -> List[Member]:
    result = await db.execute(select(Member).order_by(Member.name))
    return filter_members(result.scalars().all(), q=q)


async def get_member(db: AsyncSession, member_id: str) -> Member:
    member = await db.get(Member, member_id)
    if member is None:
        raise MemberNotFoundError(f"Member not found: id={member_id}")
    return member


async def ensure_unique(
    db: AsyncSession,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    member_code: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> None:
    """Raise DuplicateMemberError if another member already uses a value."""
    checks = [
        ("Email", Member.email, email),
        ("Phone number", Member.phone, phone),
        ("Member code", Member.member_code, member_code),
    ]
    for label, column, value in checks:
        if value is None:
            continue
        stmt = select(Member.id).where(column == value)
        if exclude_id is not None:
            stmt = stmt.where(Member.id != exclude_id)
        if await db.scalar(stmt.limit(1)) is not None:
            raise DuplicateMemberError(f"{label} already exists: {value}")


async def _unused_member_code(db: AsyncSession) -> str:
    while True:
        code = generate_member_code()
        if await db.scalar(select(Member.id).where(Member.member_code == code)) is None:
            return code


async def create_member(db: AsyncSession, member_data: MemberCreate) -> Member:
    await ensure_unique(db, email=member_data.email, phone=member_data.phone)
    member = Member(**member_data.model_dump(), member_code=await _unused_member_code(db))
    db.add(member)
    await commit(db)
    await db.refresh(member)
    logger.info("Member registered | id=%s code=%s", member.id, member.member_code)
    return member


async def update_member(db: AsyncSession, member_id: str, member_data: MemberUpdate) -> Member:
    member = await get_member(db, member_id)
    changes = member_data.model_dump(exclude_unset=True)
    await ensure_unique(db, email=changes.get("email"), phone=changes.get("phone"), exclude_id=member_id)
    for key, value in changes.items():
        if key != "address" and value is None:
            continue
        setattr(member, key, value)
    await commit(db)
    await db.refresh(member)
    logger.info("Member updated | id=%s fields=%s", member_id, sorted(changes))
    return member


async def delete_member(db: AsyncSession, member_id: str) -> None:
    await get_member(db, member_id)
    active = await db.scalar(
        select(func.count()).select_from(Issue).where(Issue.member_id == member_id, Issue.return_date.is_(None))
    )
    if active:
        raise ActiveLoansError(f"Member still holds {active} books and cannot be deleted")
    await db.execute(delete(Member).where(Member.id == member_id))
    await commit(db)
    logger.info("Member deleted | id=%s", member_id)
