"""Error taxonomy for the copilot server.

Every failure the core can surface derives from :class:`CopilotError`.
Messages are written for end users; the HTTP layer passes them through.
"""

from __future__ import annotations


class CopilotError(Exception):
    """Base class for all copilot server errors."""


# -----------------------------
# Acquisition
# -----------------------------
class AcquisitionError(CopilotError):
    """Content could not be turned into a knowledge item."""


class ParseError(AcquisitionError):
    """A binary document (PDF) could not be decoded."""


class EmptyContentError(AcquisitionError):
    """Acquired text is below the minimum-content threshold."""


class ChallengeDetectedError(AcquisitionError):
    """A bot-challenge interstitial was returned instead of real content."""


class UnreachableError(AcquisitionError):
    """Every acquisition strategy came back empty."""


class InvalidUrlError(AcquisitionError):
    """The URL cannot be parsed."""


class FileTooLargeError(AcquisitionError):
    """An uploaded file exceeds the configured size limit."""


# -----------------------------
# Persistence / model
# -----------------------------
class StorageUnavailableError(CopilotError):
    """The knowledge store could not be read or written."""


class ModelInvocationError(CopilotError):
    """The hosted model call failed.

    ``auth_failure`` is set when the service rejected the credentials, so
    callers can tell a configuration problem from a transient one.
    """

    def __init__(self, message: str, *, auth_failure: bool = False) -> None:
        super().__init__(message)
        self.auth_failure = auth_failure
