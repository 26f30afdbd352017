# services/lookup.py — ISBN metadata for pre-filling the add-book form
import logging
import re
from typing import Dict, Optional

import httpx

from config import config
from services.isbn_utils import normalize, to_isbn13

logger = logging.getLogger(__name__)

OPENLIBRARY_URL = "https://openlibrary.org"
GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"
FIELDS = ("title", "author", "category", "publication_year", "isbn")

_YEAR = re.compile(r"\b(1\d{3}|20\d{2})\b")


def _year(text: Optional[str]) -> Optional[int]:
    match = _YEAR.search(text or "")
    return int(match.group(1)) if match else None


async def openlibrary_lookup(client: httpx.AsyncClient, isbn: str) -> Optional[Dict]:
    try:
        r = await client.get(f"{OPENLIBRARY_URL}/isbn/{isbn}.json")
        if r.status_code != 200:
            return None
        data = r.json()

        author = None
        if data.get("by_statement"):
            author = data["by_statement"]
        elif data.get("authors"):
            # Edition records usually carry only the author key
            first_author = data["authors"][0]
            if isinstance(first_author, dict) and first_author.get("name"):
                author = first_author["name"]
            elif isinstance(first_author, dict) and "key" in first_author:
                ar = await client.get(f"{OPENLIBRARY_URL}{first_author['key']}.json")
                if ar.status_code == 200:
                    author = ar.json().get("name")

        subjects = data.get("subjects") or []
        return {
            "title": data.get("title"),
            "author": author,
            "category": subjects[0] if subjects and isinstance(subjects[0], str) else None,
            "publication_year": _year(data.get("publish_date")),
            "isbn": isbn,
        }
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Open Library lookup failed | isbn=%s error=%s", isbn, e)
        return None


async def google_lookup(client: httpx.AsyncClient, isbn: str) -> Optional[Dict]:
    try:
        r = await client.get(GOOGLE_BOOKS_URL, params={"q": f"isbn:{isbn}"})
        if r.status_code != 200 or not r.json().get("items"):
            return None
        info = r.json()["items"][0].get("volumeInfo", {})
        categories = info.get("categories") or []
        return {
            "title": info.get("title"),
            "author": ", ".join(info.get("authors", [])) or None,
            "category": categories[0] if categories else None,
            "publication_year": _year(info.get("publishedDate")),
            "isbn": isbn,
        }
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Google Books lookup failed | isbn=%s error=%s", isbn, e)
        return None


def merge_results(*results: Optional[Dict]) -> Dict:
    """First non-empty value per field, in the order the sources were given."""
    sources = [r for r in results if r]
    merged = {}
    for key in FIELDS:
        for r in sources:
            if r.get(key):
                merged[key] = r[key]
                break
    return merged


async def lookup_isbn(isbn: str, client: Optional[httpx.AsyncClient] = None) -> Dict:
    """
    Open Library first, Google Books to fill the gaps.

    Returns an empty dict when neither source knows the ISBN. Raises
    ValueError for a malformed ISBN.
    """
    isbn13 = to_isbn13(isbn)
    if isbn13 is None:
        raise ValueError("ISBN checksum does not match")
    query = normalize(isbn)

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=config.lookup_timeout, follow_redirects=True)
    try:
        openlib = await openlibrary_lookup(client, query)
        google = None
        if not openlib or not all(openlib.get(k) for k in FIELDS):
            google = await google_lookup(client, query)
    finally:
        if owns_client:
            await client.aclose()

    merged = merge_results(openlib, google)
    if merged:
        merged["isbn"] = isbn13
    logger.info("ISBN lookup | isbn=%s found=%s", query, bool(merged))
    return merged
