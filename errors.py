class LibraryError(Exception):
    """Base exception for library errors."""


class NotFoundError(LibraryError):
    """A referenced record does not exist."""


class BookNotFoundError(NotFoundError):
    """Requested book id does not exist."""


class MemberNotFoundError(NotFoundError):
    """Requested member id does not exist."""


class IssueNotFoundError(NotFoundError):
    """Requested issue id does not exist."""


class ConstraintViolationError(LibraryError):
    """The operation would break a uniqueness, capacity or status rule."""


class DuplicateMemberError(ConstraintViolationError):
    """Email, phone or member code already belongs to another member."""


class NoCopiesAvailableError(ConstraintViolationError):
    """Every copy of the book is on loan."""


class LoanLimitReachedError(ConstraintViolationError):
    """Member already holds the maximum number of books."""


class AlreadyReturnedError(ConstraintViolationError):
    """Issue already has a return date."""


class InvalidCopiesError(ConstraintViolationError):
    """Copy counts outside 0 <= available <= total."""


class ActiveLoansError(ConstraintViolationError):
    """Record still has books on loan and cannot be deleted."""


class StorageUnavailableError(LibraryError):
    """The local store cannot be opened or written."""
