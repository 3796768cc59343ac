class LitenomError(Exception):
    """Base class of every error raised deliberately by litenom."""


class StorageError(LitenomError):
    """The embedded store failed: I/O problem, constraint violation, bad SQL."""


class SchemaError(LitenomError):
    """A column or relationship declaration is malformed."""


class NotFoundError(LitenomError):
    """A lookup that must produce a row found nothing."""
