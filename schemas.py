from datetime import date, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator

from services.isbn_utils import is_valid, normalize

IssueStatus = Literal["issued", "returned", "overdue"]
Theme = Literal["light", "dark"]

CATEGORIES = [
    "Fiction", "Non-Fiction", "Science", "Technology", "History",
    "Biography", "Self-Help", "Business", "Children", "Education",
    "Health", "Art", "Travel", "Cooking", "Sports", "Other",
]


def _required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _year(value: int) -> int:
    current = date.today().year
    if value < 1000 or value > current:
        raise ValueError(f"year must be between 1000 and {current}")
    return value


def _isbn(value: Optional[str]) -> Optional[str]:
    value = _optional(value)
    if value is None:
        return None
    if not is_valid(value):  # raises ValueError on malformed input
        raise ValueError("ISBN checksum does not match")
    return normalize(value)


def _email(value: str) -> str:
    value = _required(value)
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("not a valid email address")
    return value.lower()


RequiredText = Annotated[str, AfterValidator(_required)]
OptionalText = Annotated[Optional[str], AfterValidator(_optional)]
PublicationYear = Annotated[int, AfterValidator(_year)]
Isbn = Annotated[Optional[str], AfterValidator(_isbn)]
Email = Annotated[str, AfterValidator(_email)]


# ---------------------------------------------------------------- books

class BookBase(BaseModel):
    title: str
    author: str
    category: str = "Fiction"
    publication_year: int
    isbn: Optional[str] = None
    total_copies: int = 1


class BookCreate(BookBase):
    title: RequiredText
    author: RequiredText
    category: RequiredText = "Fiction"
    publication_year: PublicationYear
    isbn: Isbn = None
    total_copies: int = Field(1, ge=1)
    available_copies: Optional[int] = None

    @model_validator(mode="after")
    def check_copies(self):
        if self.available_copies is None:
            self.available_copies = self.total_copies
        if not 0 <= self.available_copies <= self.total_copies:
            raise ValueError("available copies must be between 0 and total copies")
        return self


class BookUpdate(BaseModel):
    title: Optional[RequiredText] = None
    author: Optional[RequiredText] = None
    category: Optional[RequiredText] = None
    publication_year: Optional[PublicationYear] = None
    isbn: Isbn = None
    total_copies: Optional[int] = Field(None, ge=1)
    available_copies: Optional[int] = Field(None, ge=0)


class Book(BookBase):
    id: str
    available_copies: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# -------------------------------------------------------------- members

class MemberBase(BaseModel):
    name: str
    email: str
    phone: str
    address: Optional[str] = None


class MemberCreate(MemberBase):
    name: RequiredText
    email: Email
    phone: RequiredText
    address: OptionalText = None


class MemberUpdate(BaseModel):
    name: Optional[RequiredText] = None
    email: Optional[Email] = None
    phone: Optional[RequiredText] = None
    address: OptionalText = None


class Member(MemberBase):
    id: str
    member_code: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# --------------------------------------------------------------- issues

class Issue(BaseModel):
    id: str
    book_id: str
    member_id: str
    book_title: str
    member_name: str
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: IssueStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ------------------------------------------------------------- settings

class SettingsUpdate(BaseModel):
    default_loan_duration: Optional[int] = Field(None, ge=1, le=365)
    max_books_per_member: Optional[int] = Field(None, ge=1, le=100)
    fine_per_day: Optional[float] = Field(None, ge=0)
    theme: Optional[Theme] = None
    auto_notifications: Optional[bool] = None


class LibrarySettings(BaseModel):
    id: str = "default"
    default_loan_duration: int
    max_books_per_member: int
    fine_per_day: float
    theme: Theme = "light"
    auto_notifications: bool = False
    updated_at: datetime

    class Config:
        from_attributes = True


# ------------------------------------------------------- stats / transfer

class DashboardStats(BaseModel):
    total_books: int = 0
    total_copies: int = 0
    total_members: int = 0
    books_available: int = 0
    books_issued: int = 0
    overdue_count: int = 0
    total_issues: int = 0
    total_returns: int = 0


class LibraryExport(BaseModel):
    books: List[Book] = []
    members: List[Member] = []
    issues: List[Issue] = []
    settings: Optional[LibrarySettings] = None
