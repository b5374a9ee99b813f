class RegistryError(Exception):
    """Base error for the project."""


class IndexNotFound(RegistryError):
    """Raised when criteria reference an attribute that was never indexed."""


class MissingAttributeError(RegistryError, AttributeError):
    """Raised when an item has no readable value for an indexed attribute."""


class MoreThanOneRecordFound(RegistryError):
    """Raised by strict lookups that match more than one item."""


class UnhashableValueError(RegistryError, TypeError):
    """Raised when an indexed or queried value cannot be used as a bucket key."""


class MoreThanOneRecordWarning(UserWarning):
    """Emitted by best-effort lookups that match more than one item."""
