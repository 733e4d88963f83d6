from __future__ import annotations


class UsersServiceError(RuntimeError):
    """Base error for the users service."""


# Whole-batch failures: nothing could be extracted from the upload.


class ImportFormatError(UsersServiceError):
    """The uploaded file could not be decoded into rows."""


class UnsupportedFormatError(ImportFormatError):
    def __init__(self, filename: str) -> None:
        super().__init__(f"Unsupported file format: {filename!r} (expected .csv, .xlsx, .xls or .json)")
        self.filename = filename


class EmptyWorkbookError(ImportFormatError):
    def __init__(self) -> None:
        super().__init__("Workbook contains no sheets")


class UnreadableWorkbookError(ImportFormatError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Unable to read workbook: {reason}")
        self.reason = reason


class MalformedFileError(ImportFormatError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Malformed file: {reason}")
        self.reason = reason


class UploadTooLargeError(UsersServiceError):
    def __init__(self, *, limit: int, actual: int) -> None:
        super().__init__(f"Upload size limit exceeded: limit={limit}, actual={actual}")
        self.limit = limit
        self.actual = actual


# Row-level failures: recorded against the row, the batch carries on.


class RowError(UsersServiceError):
    """A single row could not be turned into an account."""


class RowValidationError(RowError):
    def __init__(self, messages: list[str]) -> None:
        super().__init__("; ".join(messages) or "Invalid data")
        self.messages = messages


class InvalidAgeError(RowError):
    def __init__(self, age: int) -> None:
        super().__init__(f"Age must be between 1 and 120 (got {age})")
        self.age = age


class DuplicateInBatchError(RowError):
    def __init__(self, email: str) -> None:
        super().__init__(f"Duplicate email in file: {email}")
        self.email = email


class ConflictError(RowError):
    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"Unique constraint conflict ({field} already exists): {value}")
        self.field = field
        self.value = value


class SpecialtyNotFoundError(RowError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Specialty '{name}' not found")
        self.name = name


class DepartmentNotFoundError(RowError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Department '{name}' not found")
        self.name = name


class VerificationEmailError(RowError):
    def __init__(self, reason: str | None = None) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Error sending verification email{detail}")
        self.reason = reason


# Collaborators and lookups.


class RemoteAPIError(UsersServiceError):
    def __init__(self, status_code: int, message: str | None = None) -> None:
        detail = message or "Remote API call failed"
        super().__init__(f"[{status_code}] {detail}")
        self.status_code = status_code
        self.detail = detail


class UserNotFoundError(UsersServiceError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class UserAlreadyExistsError(ConflictError):
    def __init__(self, email: str) -> None:
        RowError.__init__(self, "User already exists")
        self.field = "email"
        self.value = email


class AccessDeniedError(UsersServiceError):
    """The request did not pass the role gate; ``body`` is returned verbatim."""

    def __init__(self, status_code: int, body: object) -> None:
        super().__init__(f"Access denied with status {status_code}")
        self.status_code = status_code
        self.body = body
