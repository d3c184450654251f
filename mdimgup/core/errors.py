"""
Domain exceptions for image uploading, profiles and history.

Everything raised by the core derives from MdImgUpError so callers
(the HTTP layer, scripts) can catch the whole family at once and
still branch on the specific type when they need to.

A missing image file is not an error: the upload pipeline reports it
as a skipped outcome.
"""

from typing import Optional


class MdImgUpError(Exception):
    """Base class for all mdimgup domain errors."""
    pass


class ConfigurationMissingError(MdImgUpError):
    """No profile could be resolved (no pointer, no legacy configuration)."""
    pass


class ValidationError(MdImgUpError):
    """
    One or more profile fields are invalid.

    Carries every violation found, not just the first one.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")


class NameConflictError(ValidationError):
    """A profile with the same (case-insensitive) name already exists."""
    pass


class ProfileNotFoundError(MdImgUpError):
    """Raised when a requested profile id doesn't exist."""

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"Profile with ID {profile_id} not found")


class CredentialNotFoundError(MdImgUpError):
    """The profile exists but no credentials are stored for it."""

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"No credentials stored for profile {profile_id}")


class UploadFailure(MdImgUpError):
    """A single image failed to read, resize or upload."""

    def __init__(self, token: str, reason: str) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"{token}: {reason}")


class DeleteFailure(MdImgUpError):
    """Remote delete during undo failed. Reported as a warning only."""
    pass


class DocumentMismatchError(MdImgUpError):
    """The uploaded URL to revert is no longer present in the document."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(
            "Upload URL not found in document. It may have been manually edited."
        )


class ImportFormatError(MdImgUpError):
    """The profile import payload is malformed."""
    pass


class UploadCancelled(MdImgUpError):
    """The batch cancel signal was set before this item finished."""

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token
        super().__init__("Upload cancelled")
