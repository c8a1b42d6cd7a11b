"""Exception hierarchy shared by the ingestion pipeline and the record store."""


class CertificatePortalError(Exception):
    """Base exception for all certificate portal errors."""

    def __init__(self, message: str, *args):
        self.message = message
        super().__init__(message, *args)


class ParseError(CertificatePortalError):
    """Raised when an uploaded file cannot be read as its declared format."""
    pass


class MappingError(CertificatePortalError):
    """Raised when a column mapping payload is malformed."""
    pass


class StoreError(CertificatePortalError):
    """Raised when the record store cannot complete an operation."""
    pass
