"""Error taxonomy for the session core.

Every failure is handled where it is detected. These exceptions only carry
the condition from the component that spots it to the Coordinator or HTTP
router, which turns it into a reply envelope or a status code.
"""


class QrShareError(Exception):
    """Base class for all qrshare errors."""


class SessionNotFound(QrShareError):
    """Unknown session identifier."""


class SessionExpired(QrShareError):
    """Session exists but is at or past its deadline at join time."""


class MalformedMessage(QrShareError):
    """A realtime frame does not parse as a valid envelope."""


class BlobIOError(QrShareError):
    """Reading or writing a blob failed."""


class InvalidRequest(QrShareError):
    """A request is missing a required field or carries an invalid value."""
