"""Whole-library JSON export and import.

The document shape is ``{books, members, issues, settings}``. Import keeps
the exported ids, member codes and timestamps, so issue records still point
at the right book and member afterwards.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

import schemas
from crud.member import ensure_unique
from crud.settings import get_settings
from database import commit
from errors import ConstraintViolationError, DuplicateMemberError, InvalidCopiesError, LibraryError
from models import Book, Issue, LibrarySettings, Member

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    books: int = 0
    members: int = 0
    issues: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.failures)

    def summary(self) -> str:
        text = f"Imported {self.books} books, {self.members} members, {self.issues} issues"
        if self.failures:
            text += f"; skipped {self.skipped} records"
        return text


async def export_library(db: AsyncSession) -> schemas.LibraryExport:
    books = (await db.execute(select(Book).order_by(Book.created_at))).scalars().all()
    members = (await db.execute(select(Member).order_by(Member.created_at))).scalars().all()
    issues = (await db.execute(select(Issue).order_by(Issue.created_at))).scalars().all()
    settings = await get_settings(db)

    document = schemas.LibraryExport(
        books=[schemas.Book.model_validate(b) for b in books],
        members=[schemas.Member.model_validate(m) for m in members],
        issues=[schemas.Issue.model_validate(i) for i in issues],
        settings=schemas.LibrarySettings.model_validate(settings),
    )
    logger.info(
        "Library exported | books=%s members=%s issues=%s",
        len(document.books), len(document.members), len(document.issues),
    )
    return document


async def clear_all(db: AsyncSession) -> None:
    """Remove every book, member and issue. Settings are left alone."""
    await db.execute(delete(Issue))
    await db.execute(delete(Member))
    await db.execute(delete(Book))
    await commit(db)
    db.expunge_all()
    logger.info("Library cleared")


async def import_library(
    db: AsyncSession, document: Union[schemas.LibraryExport, Dict[str, Any]]
) -> ImportReport:
    """
    Replace the whole library with the contents of an export document.

    The document is validated before anything is cleared, so a malformed
    file leaves the store untouched (pydantic.ValidationError propagates).
    Members that clash on email, phone or code, and issues whose book or
    member did not make it in, are skipped and listed in the report. Each
    book's available copies are then set to its total minus the unreturned
    issues that were actually imported.
    """
    if not isinstance(document, schemas.LibraryExport):
        document = schemas.LibraryExport.model_validate(document)
    seen: Set[str] = set()
    for book in document.books:
        if book.total_copies < 1 or not 0 <= book.available_copies <= book.total_copies:
            raise InvalidCopiesError(f"Book '{book.title}' has invalid copy counts")
        if book.id in seen:
            raise ConstraintViolationError(f"Book id appears twice: {book.id}")
        seen.add(book.id)

    await clear_all(db)
    report = ImportReport()

    books: Dict[str, Book] = {}
    for book in document.books:
        books[book.id] = Book(**book.model_dump())
        db.add(books[book.id])
        report.books += 1
    await commit(db)

    member_ids: Set[str] = set()
    for member in document.members:
        try:
            if member.id in member_ids:
                raise DuplicateMemberError(f"Member id already exists: {member.id}")
            await ensure_unique(db, email=member.email, phone=member.phone, member_code=member.member_code)
        except DuplicateMemberError as e:
            logger.warning("Failed to import member | name=%s error=%s", member.name, e)
            report.failures.append(f"Member '{member.name}': {e}")
            continue
        db.add(Member(**member.model_dump()))
        await db.flush()
        member_ids.add(member.id)
        report.members += 1

    issue_ids: Set[str] = set()
    imported: List[schemas.Issue] = []
    for issue in document.issues:
        if issue.id in issue_ids:
            reason = "duplicate id"
        elif issue.book_id not in books or issue.member_id not in member_ids:
            reason = "book or member missing"
        else:
            db.add(Issue(**issue.model_dump()))
            issue_ids.add(issue.id)
            imported.append(issue)
            report.issues += 1
            continue
        logger.warning("Failed to import issue | id=%s reason=%s", issue.id, reason)
        report.failures.append(f"Issue '{issue.book_title}' for '{issue.member_name}': {reason}")

    # Copies held by skipped loans go back on the shelf
    on_loan = Counter(i.book_id for i in imported if i.return_date is None)
    for book_id, book in books.items():
        available = max(0, book.total_copies - on_loan[book_id])
        if book.available_copies != available:
            logger.warning(
                "Reconciled available copies | book_id=%s from=%s to=%s",
                book_id, book.available_copies, available,
            )
            book.available_copies = available

    if document.settings is not None:
        await db.execute(delete(LibrarySettings))
        db.add(LibrarySettings(**document.settings.model_dump()))

    try:
        await commit(db)
    except LibraryError:
        logger.exception("Import failed while writing records")
        raise

    logger.info("Library imported | %s", report.summary())
    return report
