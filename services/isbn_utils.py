"""
ISBN helpers for the catalog

Books carry an optional ISBN; these helpers validate one and bring it to
the bare digit form the store keeps.

For isbn related info, see https://isbn-information.com/
"""
from typing import Optional

ISBN13_WEIGHTS = [1, 3] * 6 + [1]
ISBN10_WEIGHTS = [10, 9, 8, 7, 6, 5, 4, 3, 2, 1]
VALID_PREFIX_ELEMENTS = ["978", "979"]
VALIDATION_ERRORS = {
    "length": "ISBN must have 10 or 13 characters.",
    "invalid": "ISBN has invalid characters.",
    "X": "Only the last character of an ISBN 10 may be 'X'.",
    "prefix": "ISBN 13 starts with invalid Prefix Element {}",
    }


def normalize(isbn: str) -> str:
    """
    Strips hyphens and spaces and upper-cases a trailing 'x'

    Parameters
    ----------
    isbn : str
        An ISBN as typed, e.g. "978-0-13-235088-4"

    Returns
    -------
    str
        The bare form, e.g. "9780132350884"

    """
    return isbn.replace("-", "").replace(" ", "").upper()


def is_valid(isbn: str) -> bool:
    """
    Validates an ISBN 10 or 13

    Parameters
    ----------
    isbn : str
        An ISBN code (10 or 13), hyphens and spaces allowed

    Returns
    -------
    bool
        True if the check digit matches.

    Raises
    ------
    ValueError
        If isbn has invalid characters or is not of proper length

    """
    stripped = normalize(isbn)
    if len(stripped) not in (10, 13):
        raise ValueError(VALIDATION_ERRORS["length"])
    if any(char not in "0123456789X" for char in stripped):
        raise ValueError(VALIDATION_ERRORS["invalid"])
    if "X" in stripped[:-1] or (len(stripped) == 13 and "X" in stripped):
        raise ValueError(VALIDATION_ERRORS["X"])
    if len(stripped) == 13:
        if stripped[:3] not in VALID_PREFIX_ELEMENTS:
            raise ValueError(VALIDATION_ERRORS["prefix"].format(stripped[:3]))
        return sum(w * int(c) for w, c in zip(ISBN13_WEIGHTS, stripped)) % 10 == 0
    digits = [10 if c == "X" else int(c) for c in stripped]
    return sum(w * d for w, d in zip(ISBN10_WEIGHTS, digits)) % 11 == 0


def to_isbn13(isbn: str) -> Optional[str]:
    """
    Converts an ISBN 10 to an ISBN 13; an ISBN 13 comes back normalized

    Returns None when the input fails its checksum.
    """
    stripped = normalize(isbn)
    if not is_valid(stripped):
        return None
    if len(stripped) == 13:
        return stripped
    body = "978" + stripped[:-1]
    check = (10 - sum(w * int(c) for w, c in zip(ISBN13_WEIGHTS, body)) % 10) % 10
    return body + str(check)
