"""Exception hierarchy for the retrieval memory layer.

"No data yet" conditions (missing namespace, incompatible schema) are not
exceptions: lookups return ``None`` and search returns an empty response.
"""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFoundException(AppException):
    """A record referenced by a write does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class ValidationException(AppException):
    """Malformed arguments supplied by the caller."""

    def __init__(self, message: str = "Validation error"):
        super().__init__(message)


class UnknownFilterError(ValidationException):
    """A filter name is not part of the namespace's filter schema (strict mode)."""

    def __init__(self, name: str, filter_names: tuple[str, ...]):
        self.name = name
        self.filter_names = filter_names
        super().__init__(f"Unknown filter name {name!r}; namespace declares {list(filter_names)}")


class IntegrityException(AppException):
    """A write would break chunk ordering or document version invariants."""

    def __init__(self, message: str = "Integrity violation"):
        super().__init__(message)
