# crud/book.py — catalog records, copy counts checked on every write
import logging
from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import commit
from errors import ActiveLoansError, BookNotFoundError, InvalidCopiesError
from models import Book, Issue
from schemas import BookCreate, BookUpdate
from services.filters import ALL, filter_books

logger = logging.getLogger(__name__)


async def get_books(
    db: AsyncSession, q: str = "", category: str = ALL, availability: str = ALL
) -> List[Book]:
    result = await db.execute(select(Book).order_by(Book.title, Book.author))
    return filter_books(result.scalars().all(), q=q, category=category, availability=availability)


async def get_book(db: AsyncSession, book_id: str) -> Book:
    book = await db.get(Book, book_id)
    if book is None:
        raise BookNotFoundError(f"Book not found: id={book_id}")
    return book


async def get_categories(db: AsyncSession) -> List[str]:
    result = await db.execute(select(Book.category).distinct().order_by(Book.category))
    return list(result.scalars().all())


async def create_book(db: AsyncSession, book_data: BookCreate) -> Book:
    """All copies of a new book start on the shelf unless told otherwise."""
    new_book = Book(**book_data.model_dump())
    db.add(new_book)
    await commit(db)
    await db.refresh(new_book)
    logger.info("Book added | id=%s title=%s copies=%s", new_book.id, new_book.title, new_book.total_copies)
    return new_book


async def update_book(db: AsyncSession, book_id: str, book_data: BookUpdate) -> Book:
    """
    Apply a partial update.

    available_copies is always total_copies minus the copies on loan. An
    explicit available_copies that disagrees is rejected.
    """
    book = await get_book(db, book_id)
    changes = book_data.model_dump(exclude_unset=True)

    total = changes.get("total_copies") or book.total_copies
    on_loan = await count_on_loan(db, book_id)
    available = total - on_loan
    if available < 0:
        raise InvalidCopiesError(f"Total copies cannot be below the {on_loan} copies on loan")
    requested = changes.get("available_copies")
    if requested is not None and requested != available:
        raise InvalidCopiesError(
            f"Available copies must be {available} ({total} total, {on_loan} on loan)"
        )
    changes["total_copies"] = total
    changes["available_copies"] = available

    for key, value in changes.items():
        if key in ("title", "author", "category", "publication_year", "total_copies") and value is None:
            continue
        setattr(book, key, value)
    await commit(db)
    await db.refresh(book)
    logger.info("Book updated | id=%s fields=%s", book_id, sorted(changes))
    return book


async def count_on_loan(db: AsyncSession, book_id: str) -> int:
    """Copies of the book held by unreturned issues."""
    active = await db.scalar(
        select(func.count()).select_from(Issue).where(Issue.book_id == book_id, Issue.return_date.is_(None))
    )
    return active or 0


async def delete_book(db: AsyncSession, book_id: str) -> None:
    await get_book(db, book_id)
    active = await count_on_loan(db, book_id)
    if active:
        raise ActiveLoansError(f"Book has {active} copies on loan and cannot be deleted")
    await db.execute(delete(Book).where(Book.id == book_id))
    await commit(db)
    logger.info("Book deleted | id=%s", book_id)
