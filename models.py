# models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Integer, String

from database import Base

ISSUED = "issued"
RETURNED = "returned"
OVERDUE = "overdue"
ISSUE_STATUSES = (ISSUED, RETURNED, OVERDUE)

SETTINGS_ID = "default"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_books_total_copies"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )
    id = Column(String(32), primary_key=True, default=new_id)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    publication_year = Column(Integer, nullable=False)
    isbn = Column(String, index=True)
    total_copies = Column(Integer, default=1, nullable=False)
    available_copies = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Member(Base):
    __tablename__ = "members"
    id = Column(String(32), primary_key=True, default=new_id)
    member_code = Column(String(12), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    phone = Column(String, unique=True, nullable=False, index=True)
    address = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Issue(Base):
    __tablename__ = "issues"
    __table_args__ = (
        CheckConstraint(
            "status IN ('issued', 'returned', 'overdue')", name="ck_issues_status"
        ),
    )
    id = Column(String(32), primary_key=True, default=new_id)
    # Plain ids, not foreign keys: history outlives deleted books and members
    book_id = Column(String(32), nullable=False, index=True)
    member_id = Column(String(32), nullable=False, index=True)
    book_title = Column(String, nullable=False)
    member_name = Column(String, nullable=False)
    issue_date = Column(DateTime, nullable=False, index=True)
    due_date = Column(DateTime, nullable=False, index=True)
    return_date = Column(DateTime, nullable=True)
    status = Column(String(8), default=ISSUED, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.return_date is None


class LibrarySettings(Base):
    __tablename__ = "settings"
    id = Column(String(16), primary_key=True, default=SETTINGS_ID)
    default_loan_duration = Column(Integer, default=14, nullable=False)
    max_books_per_member = Column(Integer, default=3, nullable=False)
    fine_per_day = Column(Float, default=1.0, nullable=False)
    theme = Column(String(8), default="light", nullable=False)
    auto_notifications = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
