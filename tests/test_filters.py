from types import SimpleNamespace

from services.filters import filter_books, filter_issues, filter_members, matches_choice, matches_text


def _book(title, author="Anon", category="Fiction", isbn=None, available=1):
    return SimpleNamespace(title=title, author=author, category=category, isbn=isbn, available_copies=available)


BOOKS = [
    _book("Dune", "Frank Herbert", "Fiction", "9780441013593", available=2),
    _book("A Brief History of Time", "Stephen Hawking", "Science", available=0),
    _book("Clean Code", "Robert C. Martin", "Technology", "9780132350884", available=1),
]


def test_matches_text_is_case_insensitive():
    assert matches_text("DUNE", "Dune")
    assert matches_text("", "anything")
    assert matches_text("  ", None)
    assert not matches_text("dune", None, "Clean Code")


def test_matches_choice_all():
    assert matches_choice("Fiction", "all")
    assert matches_choice("Fiction", None)
    assert not matches_choice("Fiction", "Science")


def test_filter_books_by_text():
    assert [b.title for b in filter_books(BOOKS, q="hawking")] == ["A Brief History of Time"]
    assert [b.title for b in filter_books(BOOKS, q="0132350884")] == ["Clean Code"]


def test_filter_books_by_category_and_availability():
    assert [b.title for b in filter_books(BOOKS, category="Science")] == ["A Brief History of Time"]
    assert [b.title for b in filter_books(BOOKS, availability="available")] == ["Dune", "Clean Code"]
    assert [b.title for b in filter_books(BOOKS, availability="unavailable")] == ["A Brief History of Time"]


def test_filter_members():
    members = [
        SimpleNamespace(name="Ada Lovelace", member_code="LIB123456001", email="ada@example.com", phone="555-0100"),
        SimpleNamespace(name="Alan Turing", member_code="LIB123456002", email="alan@example.com", phone="555-0101"),
    ]
    assert [m.name for m in filter_members(members, q="lib123456002")] == ["Alan Turing"]
    assert [m.name for m in filter_members(members, q="0100")] == ["Ada Lovelace"]
    assert len(filter_members(members)) == 2


def test_filter_issues():
    issues = [
        SimpleNamespace(book_title="Dune", member_name="Ada", status="issued", member_id="m1", book_id="b1"),
        SimpleNamespace(book_title="Clean Code", member_name="Alan", status="overdue", member_id="m2", book_id="b2"),
    ]
    assert [i.book_title for i in filter_issues(issues, status="overdue")] == ["Clean Code"]
    assert [i.book_title for i in filter_issues(issues, q="ada")] == ["Dune"]
    assert [i.book_title for i in filter_issues(issues, member_id="m2")] == ["Clean Code"]
    assert filter_issues(issues, book_id="b3") == []
