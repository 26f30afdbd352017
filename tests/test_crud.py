import re

import pytest
from pydantic import ValidationError

from config import config
from crud.book import create_book, delete_book, get_book, get_books, get_categories, update_book
from crud.member import create_member, delete_member, generate_member_code, get_member, get_members, update_member
from crud.settings import get_settings, save_settings
from errors import (
    ActiveLoansError,
    BookNotFoundError,
    DuplicateMemberError,
    InvalidCopiesError,
    MemberNotFoundError,
)
from schemas import BookCreate, BookUpdate, MemberCreate, MemberUpdate, SettingsUpdate
from services.circulation import issue_book, return_book

pytestmark = pytest.mark.anyio


def book_data(**overrides):
    data = {"title": "Dune", "author": "Frank Herbert", "category": "Fiction", "publication_year": 1965}
    data.update(overrides)
    return BookCreate(**data)


def member_data(**overrides):
    data = {"name": "Ada Lovelace", "email": "ada@example.com", "phone": "555-0100"}
    data.update(overrides)
    return MemberCreate(**data)


# ---------------------------------------------------------------- books

async def test_create_book_starts_with_all_copies_available(db):
    book = await create_book(db, book_data(total_copies=3))
    assert book.id
    assert book.total_copies == 3
    assert book.available_copies == 3
    assert (await get_book(db, book.id)).title == "Dune"


def test_book_create_validation():
    with pytest.raises(ValidationError):
        book_data(title="   ")
    with pytest.raises(ValidationError):
        book_data(total_copies=2, available_copies=3)
    with pytest.raises(ValidationError):
        book_data(total_copies=0)
    with pytest.raises(ValidationError):
        book_data(publication_year=999)
    with pytest.raises(ValidationError):
        book_data(isbn="9780132350885")


def test_book_create_normalizes_isbn():
    assert book_data(isbn="978-0-13-235088-4").isbn == "9780132350884"
    assert book_data(isbn="  ").isbn is None


async def test_get_book_missing(db):
    with pytest.raises(BookNotFoundError):
        await get_book(db, "nope")


async def test_get_books_filters(db):
    await create_book(db, book_data())
    await create_book(db, book_data(title="Cosmos", author="Carl Sagan", category="Science"))
    assert [b.title for b in await get_books(db)] == ["Cosmos", "Dune"]
    assert [b.title for b in await get_books(db, q="sagan")] == ["Cosmos"]
    assert [b.title for b in await get_books(db, category="Fiction")] == ["Dune"]
    assert await get_categories(db) == ["Fiction", "Science"]


async def test_update_book_follows_copies_on_loan(db):
    book = await create_book(db, book_data(total_copies=3))
    ada = await create_member(db, member_data())
    alan = await create_member(db, member_data(name="Alan Turing", email="alan@example.com", phone="555-0101"))
    await issue_book(db, book.id, ada.id)
    await issue_book(db, book.id, alan.id)

    book = await update_book(db, book.id, BookUpdate(total_copies=5))
    assert (book.total_copies, book.available_copies) == (5, 3)

    book = await update_book(db, book.id, BookUpdate(total_copies=2, available_copies=0))
    assert (book.total_copies, book.available_copies) == (2, 0)

    with pytest.raises(InvalidCopiesError):
        await update_book(db, book.id, BookUpdate(total_copies=1))
    with pytest.raises(InvalidCopiesError):
        await update_book(db, book.id, BookUpdate(total_copies=4, available_copies=4))
    assert (book.total_copies, book.available_copies) == (2, 0)


async def test_update_book_fields(db):
    book = await create_book(db, book_data())
    book = await update_book(db, book.id, BookUpdate(title="Dune Messiah", publication_year=1969))
    assert book.title == "Dune Messiah"
    assert book.publication_year == 1969
    assert book.author == "Frank Herbert"

    with pytest.raises(InvalidCopiesError):
        await update_book(db, book.id, BookUpdate(available_copies=5))


async def test_delete_book_refused_while_on_loan(db):
    book = await create_book(db, book_data())
    member = await create_member(db, member_data())
    issue = await issue_book(db, book.id, member.id)

    with pytest.raises(ActiveLoansError):
        await delete_book(db, book.id)

    await return_book(db, issue.id)
    await delete_book(db, book.id)
    with pytest.raises(BookNotFoundError):
        await get_book(db, book.id)


# -------------------------------------------------------------- members

def test_generate_member_code_format():
    assert re.fullmatch(r"LIB\d{9}", generate_member_code())


async def test_create_member_assigns_code(db):
    member = await create_member(db, member_data(email="Ada@Example.com"))
    assert re.fullmatch(r"LIB\d{9}", member.member_code)
    assert member.email == "ada@example.com"
    assert (await get_member(db, member.id)).name == "Ada Lovelace"


def test_member_create_validation():
    with pytest.raises(ValidationError):
        member_data(email="not-an-email")
    with pytest.raises(ValidationError):
        member_data(name="")
    with pytest.raises(ValidationError):
        member_data(phone="  ")


async def test_duplicate_email_and_phone_rejected(db):
    await create_member(db, member_data())
    with pytest.raises(DuplicateMemberError):
        await create_member(db, member_data(phone="555-0199", email="ADA@example.com"))
    with pytest.raises(DuplicateMemberError):
        await create_member(db, member_data(email="other@example.com"))
    assert len(await get_members(db)) == 1


async def test_update_member(db):
    ada = await create_member(db, member_data())
    alan = await create_member(db, member_data(name="Alan Turing", email="alan@example.com", phone="555-0101"))

    ada = await update_member(db, ada.id, MemberUpdate(email="ada@example.com", address="London"))
    assert ada.address == "London"

    with pytest.raises(DuplicateMemberError):
        await update_member(db, alan.id, MemberUpdate(email="ada@example.com"))


async def test_delete_member(db):
    member = await create_member(db, member_data())
    await delete_member(db, member.id)
    with pytest.raises(MemberNotFoundError):
        await get_member(db, member.id)


async def test_delete_member_refused_while_holding_books(db):
    book = await create_book(db, book_data())
    member = await create_member(db, member_data())
    await issue_book(db, book.id, member.id)
    with pytest.raises(ActiveLoansError):
        await delete_member(db, member.id)


# ------------------------------------------------------------- settings

async def test_settings_seeded_from_config(db):
    settings = await get_settings(db)
    assert settings.default_loan_duration == config.default_loan_duration
    assert settings.max_books_per_member == config.max_books_per_member
    assert settings.fine_per_day == config.fine_per_day
    assert settings.theme == "light"


async def test_save_settings_partial(db):
    await save_settings(db, SettingsUpdate(max_books_per_member=5, theme="dark"))
    settings = await get_settings(db)
    assert settings.max_books_per_member == 5
    assert settings.theme == "dark"
    assert settings.default_loan_duration == config.default_loan_duration


def test_settings_update_bounds():
    with pytest.raises(ValidationError):
        SettingsUpdate(default_loan_duration=0)
    with pytest.raises(ValidationError):
        SettingsUpdate(fine_per_day=-1)
    with pytest.raises(ValidationError):
        SettingsUpdate(theme="blue")
