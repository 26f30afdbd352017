# main.py — library manager: dashboard, books, members, issues, settings
import json
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from config import config
from crud.book import create_book, delete_book, get_book, get_books, get_categories, update_book
from crud.issue import get_issues
from crud.member import create_member, delete_member, get_member, get_members, update_member
from crud.settings import get_settings, save_settings
from database import AsyncSessionLocal, get_db, init_db
from errors import ConstraintViolationError, LibraryError, NotFoundError, StorageUnavailableError
from models import ISSUE_STATUSES, OVERDUE, utcnow
from schemas import CATEGORIES, BookCreate, BookUpdate, MemberCreate, MemberUpdate, SettingsUpdate
from services.circulation import calculate_fine, dashboard_stats, is_overdue, issue_book, return_book, sweep_overdue
from services.lookup import lookup_isbn
from services.sweeper import OverdueSweeper
from services.transfer import export_library, import_library

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

sweeper = OverdueSweeper(AsyncSessionLocal, config.sweep_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    sweeper.start()
    yield
    await sweeper.stop()


app = FastAPI(title=config.app_name, debug=config.debug, lifespan=lifespan)
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
templates.env.globals["app_name"] = config.app_name


# === HELPERS ===

def _redirect(url: str, notice: Optional[str] = None, level: str = "success") -> RedirectResponse:
    if notice:
        url = f"{url}?{urlencode({'notice': notice, 'level': level})}"
    return RedirectResponse(url, status_code=303)


def _blank(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def _messages(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        messages.append(f"{field.replace('_', ' ')}: {msg}" if field else msg)
    return messages


def _status_for(exc: LibraryError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConstraintViolationError):
        return 409
    if isinstance(exc, StorageUnavailableError):
        return 503
    return 400


async def _render(request: Request, db: AsyncSession, name: str, context: dict, status_code: int = 200):
    settings = await get_settings(db)
    context = {"theme": settings.theme, **context}
    return templates.TemplateResponse(request, name, context, status_code=status_code)


async def _category_choices(db: AsyncSession) -> List[str]:
    extra = [c for c in await get_categories(db) if c not in CATEGORIES]
    return CATEGORIES + extra


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    logger.warning("Request failed | path=%s error=%s", request.url.path, exc)
    return templates.TemplateResponse(
        request, "error.html", {"message": str(exc), "theme": "light"}, status_code=_status_for(exc)
    )


@app.exception_handler(DBAPIError)
async def storage_error_handler(request: Request, exc: DBAPIError):
    logger.error("Library store unavailable | path=%s error=%s", request.url.path, exc)
    return templates.TemplateResponse(
        request, "error.html", {"message": "Library store unavailable", "theme": "light"}, status_code=503
    )


@app.get("/health")
async def health():
    return {"status": "ok", "app": config.app_name}


# === DASHBOARD ===

@app.get("/")
async def dashboard(request: Request, db: AsyncSession = Depends(get_db)):
    stats = await dashboard_stats(db)
    recent_issues = (await get_issues(db))[:5]
    settings = await get_settings(db)
    return await _render(request, db, "dashboard.html", {
        "active_tab": "dashboard",
        "stats": stats,
        "recent_issues": recent_issues,
        "settings": settings,
    })


# === BOOKS ===

def _empty_book() -> dict:
    return {
        "title": "", "author": "", "category": "Fiction",
        "publication_year": date.today().year, "isbn": "",
        "total_copies": 1, "available_copies": "",
    }


async def _book_form(request, db, book, action, errors=None, status_code=200, book_id=None):
    return await _render(request, db, "book_form.html", {
        "active_tab": "books",
        "book": book,
        "book_id": book_id,
        "action": action,
        "categories": await _category_choices(db),
        "errors": errors or [],
        "lookup_enabled": config.enable_lookup,
    }, status_code=status_code)


@app.get("/books")
async def list_books(
    request: Request,
    q: str = "",
    category: str = "all",
    availability: str = "all",
    db: AsyncSession = Depends(get_db),
):
    books = await get_books(db, q=q, category=category, availability=availability)
    return await _render(request, db, "books.html", {
        "active_tab": "books",
        "books": books,
        "categories": await _category_choices(db),
        "q": q,
        "current_category": category,
        "current_availability": availability,
    })


@app.get("/books/add")
async def add_book_form(request: Request, db: AsyncSession = Depends(get_db)):
    return await _book_form(request, db, _empty_book(), "/books/add")


@app.post("/books/add")
async def add_book(
    request: Request,
    title: str = Form(""),
    author: str = Form(""),
    category: str = Form("Fiction"),
    publication_year: str = Form(""),
    isbn: str = Form(""),
    total_copies: str = Form("1"),
    available_copies: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    form = {
        "title": title, "author": author, "category": category,
        "publication_year": publication_year, "isbn": isbn,
        "total_copies": total_copies, "available_copies": available_copies,
    }
    try:
        book_data = BookCreate(**{**form, "available_copies": _blank(available_copies)})
        book = await create_book(db, book_data)
    except ValidationError as e:
        return await _book_form(request, db, form, "/books/add", errors=_messages(e), status_code=400)
    except LibraryError as e:
        return await _book_form(request, db, form, "/books/add", errors=[str(e)], status_code=_status_for(e))
    return _redirect("/books", f"Book added: {book.title}")


@app.post("/books/lookup")
async def lookup_book(request: Request, isbn: str = Form(""), db: AsyncSession = Depends(get_db)):
    book = {**_empty_book(), "isbn": isbn}
    if not config.enable_lookup:
        return await _book_form(request, db, book, "/books/add", errors=["ISBN lookup is disabled"])
    try:
        found = await lookup_isbn(isbn)
    except ValueError as e:
        return await _book_form(request, db, book, "/books/add", errors=[f"Invalid ISBN: {e}"], status_code=400)
    if not found:
        return await _book_form(request, db, book, "/books/add", errors=["No book found for that ISBN"])
    book.update({k: v for k, v in found.items() if v})
    return await _book_form(request, db, book, "/books/add")


@app.get("/books/{book_id}/edit")
async def edit_book_form(book_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    book = await get_book(db, book_id)
    return await _book_form(request, db, book, f"/books/{book_id}/edit", book_id=book_id)


@app.post("/books/{book_id}/edit")
async def edit_book(
    book_id: str,
    request: Request,
    title: str = Form(...),
    author: str = Form(...),
    category: str = Form(...),
    publication_year: str = Form(...),
    isbn: str = Form(""),
    total_copies: str = Form(...),
    available_copies: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    form = {
        "title": title, "author": author, "category": category,
        "publication_year": publication_year, "isbn": isbn,
        "total_copies": total_copies, "available_copies": available_copies,
    }
    action = f"/books/{book_id}/edit"
    try:
        changes = BookUpdate(**{**form, "available_copies": _blank(available_copies)})
        book = await update_book(db, book_id, changes)
    except ValidationError as e:
        return await _book_form(request, db, form, action, errors=_messages(e), status_code=400, book_id=book_id)
    except ConstraintViolationError as e:
        return await _book_form(request, db, form, action, errors=[str(e)], status_code=409, book_id=book_id)
    return _redirect("/books", f"Book updated: {book.title}")


@app.post("/books/{book_id}/delete")
async def delete_book_route(book_id: str, db: AsyncSession = Depends(get_db)):
    try:
        await delete_book(db, book_id)
    except LibraryError as e:
        return _redirect("/books", str(e), "error")
    return _redirect("/books", "Book deleted")


# === MEMBERS ===

async def _member_form(request, db, member, action, errors=None, status_code=200, member_id=None):
    return await _render(request, db, "member_form.html", {
        "active_tab": "members",
        "member": member,
        "member_id": member_id,
        "action": action,
        "errors": errors or [],
    }, status_code=status_code)


@app.get("/members")
async def list_members(request: Request, q: str = "", db: AsyncSession = Depends(get_db)):
    members = await get_members(db, q=q)
    active = {}
    for issue in await get_issues(db):
        if issue.is_active:
            active[issue.member_id] = active.get(issue.member_id, 0) + 1
    return await _render(request, db, "members.html", {
        "active_tab": "members",
        "members": members,
        "active_loans": active,
        "q": q,
    })


@app.get("/members/add")
async def add_member_form(request: Request, db: AsyncSession = Depends(get_db)):
    member = {"name": "", "email": "", "phone": "", "address": ""}
    return await _member_form(request, db, member, "/members/add")


@app.post("/members/add")
async def add_member(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    address: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    form = {"name": name, "email": email, "phone": phone, "address": address}
    try:
        member = await create_member(db, MemberCreate(**form))
    except ValidationError as e:
        return await _member_form(request, db, form, "/members/add", errors=_messages(e), status_code=400)
    except LibraryError as e:
        return await _member_form(request, db, form, "/members/add", errors=[str(e)], status_code=_status_for(e))
    return _redirect("/members", f"Member registered: {member.name} ({member.member_code})")


@app.get("/members/{member_id}/edit")
async def edit_member_form(member_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    member = await get_member(db, member_id)
    return await _member_form(request, db, member, f"/members/{member_id}/edit", member_id=member_id)


@app.post("/members/{member_id}/edit")
async def edit_member(
    member_id: str,
    request: Request,
    name: str = Form(...),
    email: str = Form(...),
    phone: str = Form(...),
    address: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    form = {"name": name, "email": email, "phone": phone, "address": address}
    action = f"/members/{member_id}/edit"
    try:
        member = await update_member(db, member_id, MemberUpdate(**form))
    except ValidationError as e:
        return await _member_form(request, db, form, action, errors=_messages(e), status_code=400, member_id=member_id)
    except ConstraintViolationError as e:
        return await _member_form(request, db, form, action, errors=[str(e)], status_code=409, member_id=member_id)
    return _redirect("/members", f"Member updated: {member.name}")


@app.post("/members/{member_id}/delete")
async def delete_member_route(member_id: str, db: AsyncSession = Depends(get_db)):
    try:
        await delete_member(db, member_id)
    except LibraryError as e:
        return _redirect("/members", str(e), "error")
    return _redirect("/members", "Member deleted")


# === ISSUES ===

@app.get("/issues")
async def list_issues(
    request: Request,
    q: str = "",
    status: str = "all",
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    settings = await get_settings(db)
    issues = await get_issues(db, q=q, status=status)
    return await _render(request, db, "issues.html", {
        "active_tab": "issues",
        "issues": issues,
        "fines": {i.id: calculate_fine(i, settings.fine_per_day, now) for i in issues},
        "late": {i.id for i in issues if is_overdue(i, now)},
        "books": await get_books(db, availability="available"),
        "members": await get_members(db),
        "settings": settings,
        "q": q,
        "current_status": status,
        "statuses": ISSUE_STATUSES,
    })


@app.post("/issues")
async def issue_book_route(
    book_id: str = Form(...),
    member_id: str = Form(...),
    due_date: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    due = None
    if due_date.strip():
        try:
            # A due day means the end of that day
            due = datetime.combine(date.fromisoformat(due_date.strip()), time(23, 59, 59))
        except ValueError:
            return _redirect("/issues", f"Invalid due date: {due_date}", "error")
    try:
        issue = await issue_book(db, book_id, member_id, due_date=due)
    except LibraryError as e:
        return _redirect("/issues", str(e), "error")
    return _redirect(
        "/issues",
        f"'{issue.book_title}' issued to {issue.member_name}, due {issue.due_date:%Y-%m-%d}",
    )


@app.post("/issues/{issue_id}/return")
async def return_book_route(issue_id: str, db: AsyncSession = Depends(get_db)):
    try:
        issue = await return_book(db, issue_id)
    except LibraryError as e:
        return _redirect("/issues", str(e), "error")
    if issue.status == OVERDUE:
        settings = await get_settings(db)
        fine = calculate_fine(issue, settings.fine_per_day)
        return _redirect("/issues", f"'{issue.book_title}' returned late, fine {fine:.2f}", "warning")
    return _redirect("/issues", f"'{issue.book_title}' returned")


@app.post("/issues/sweep")
async def sweep_route(db: AsyncSession = Depends(get_db)):
    flipped = await sweep_overdue(db)
    return _redirect("/issues", f"{flipped} issues marked overdue", "info")


# === SETTINGS ===

@app.get("/settings")
async def settings_page(request: Request, db: AsyncSession = Depends(get_db)):
    return await _render(request, db, "settings.html", {
        "active_tab": "settings",
        "settings": await get_settings(db),
        "stats": await dashboard_stats(db),
    })


@app.post("/settings")
async def save_settings_route(
    default_loan_duration: str = Form(...),
    max_books_per_member: str = Form(...),
    fine_per_day: str = Form(...),
    theme: str = Form("light"),
    auto_notifications: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
):
    try:
        changes = SettingsUpdate(
            default_loan_duration=default_loan_duration,
            max_books_per_member=max_books_per_member,
            fine_per_day=fine_per_day,
            theme=theme,
            auto_notifications=auto_notifications is not None,
        )
    except ValidationError as e:
        return _redirect("/settings", "; ".join(_messages(e)), "error")
    await save_settings(db, changes)
    return _redirect("/settings", "Settings saved")


@app.get("/settings/export")
async def export_route(db: AsyncSession = Depends(get_db)):
    document = await export_library(db)
    filename = f"library-export-{date.today().isoformat()}.json"
    return JSONResponse(
        document.model_dump(mode="json"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/settings/import")
async def import_route(file: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    try:
        data = json.loads(await file.read())
    except ValueError:
        return _redirect("/settings", "Import file is not valid JSON", "error")
    try:
        report = await import_library(db, data)
    except ValidationError as e:
        logger.warning("Import rejected | errors=%s", len(e.errors()))
        return _redirect("/settings", "Import file is not a library export", "error")
    except LibraryError as e:
        return _redirect("/settings", f"Import failed: {e}", "error")
    return _redirect("/settings", report.summary(), "warning" if report.failures else "success")
