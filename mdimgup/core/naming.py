"""
Object key naming patterns.

A naming pattern is a small template that decides the storage key of
an uploaded image, for example ``{date}/{filename}-{hash:8}{ext}``.
Patterns are the user-facing contract for filename templating, so the
variable vocabulary here is stable:

- {timestamp}  milliseconds since epoch at render time
- {date}       YYYY-MM-DD
- {time}       HH-MM-SS
- {datetime}   YYYY-MM-DD_HH-MM-SS
- {filename}   original file name without extension
- {ext}        original extension with the dot, case preserved
- {hash:N}     first N characters of the content fingerprint (default 8)
- {profile}    profile name, lowercased, non [a-z0-9] replaced with '-'
- {counter}    per-renderer counter, zero padded to 4 digits
- {random:N}   N random lowercase alphanumeric characters (default 6)

Only ``hash`` and ``random`` honour the ``:N`` suffix.
"""

import random
import re
import string
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePath
from typing import Optional


DEFAULT_NAMING_PATTERN = "{timestamp}-{filename}{ext}"

VARIABLES = (
    "timestamp",
    "date",
    "time",
    "datetime",
    "filename",
    "ext",
    "hash",
    "profile",
    "counter",
    "random",
)

# At least one of these must appear or two uploads can map to one key
UNIQUENESS_VARIABLES = frozenset({"timestamp", "datetime", "hash", "counter", "random"})

DEFAULT_HASH_LENGTH = 8
DEFAULT_RANDOM_LENGTH = 6

_TOKEN_RE = re.compile(r"\{(\w+)(?::(\d+))?\}")
_VALIDATION_TOKEN_RE = re.compile(r"\{([^}:]+)(?::(\d+))?\}")
_PROFILE_SANITIZE_RE = re.compile(r"[^a-z0-9]")
_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class NamingContext:
    """Inputs a pattern is rendered against."""
    original_path: str
    file_hash: str
    profile_name: str


@dataclass(frozen=True)
class NamingPattern:
    """A predefined pattern with a human description."""
    pattern: str
    description: str = ""


@dataclass(frozen=True)
class PatternValidation:
    valid: bool
    error: Optional[str] = None


NAMING_PATTERN_TEMPLATES: list[NamingPattern] = [
    NamingPattern(
        pattern=DEFAULT_NAMING_PATTERN,
        description="Default: Timestamp + original filename (e.g., 1700000000000-screenshot.png)",
    ),
    NamingPattern(
        pattern="{datetime}-{filename}{ext}",
        description="DateTime + filename (e.g., 2025-11-20_14-30-45-screenshot.png)",
    ),
    NamingPattern(
        pattern="{date}/{filename}-{hash:8}{ext}",
        description="Date folder + filename + hash (e.g., 2025-11-20/screenshot-a1b2c3d4.png)",
    ),
    NamingPattern(
        pattern="{profile}/{date}/{counter}-{filename}{ext}",
        description="Profile/date folders + counter (e.g., prod-blog/2025-11-20/0001-screenshot.png)",
    ),
    NamingPattern(
        pattern="{hash:12}{ext}",
        description="Content-based hash only (e.g., a1b2c3d4e5f6.png)",
    ),
    NamingPattern(
        pattern="{date}-{time}-{random:4}{ext}",
        description="Date-time + random suffix (e.g., 2025-11-20-14-30-45-x7k9.png)",
    ),
]

EXAMPLE_CONTEXT = NamingContext(
    original_path="/path/to/image.png",
    file_hash="a1b2c3d4e5f6g7h8",
    profile_name="Production Blog",
)


def sanitize_profile_name(name: str) -> str:
    """Lowercase and replace every character outside [a-z0-9] with '-'."""
    return _PROFILE_SANITIZE_RE.sub("-", name.lower())


def validate_pattern(pattern: str) -> PatternValidation:
    """
    Check a pattern before it is accepted for a profile.

    Fails on an empty pattern, on any unknown variable (the error names
    it) and on a pattern without a uniqueness variable.
    """
    if not pattern or not pattern.strip():
        return PatternValidation(valid=False, error="Pattern cannot be empty")

    names = []
    for match in _VALIDATION_TOKEN_RE.finditer(pattern):
        name = match.group(1)
        if name not in VARIABLES:
            return PatternValidation(valid=False, error=f"Unknown variable: {{{name}}}")
        names.append(name)

    if not UNIQUENESS_VARIABLES.intersection(names):
        return PatternValidation(
            valid=False,
            error=(
                "Pattern must include at least one unique identifier "
                "(timestamp, datetime, hash, counter, or random)"
            ),
        )

    return PatternValidation(valid=True)


class NamingPatternRenderer:
    """
    Renders naming patterns into storage key suffixes.

    The {counter} variable is local to the instance: it starts at 1 and
    restarts whenever a new renderer is created. Nothing is persisted.
    """

    def __init__(self) -> None:
        self._counter = 0

    def render(
        self,
        pattern: str,
        context: NamingContext,
        now: Optional[datetime] = None,
    ) -> str:
        """Substitute every recognised variable in a single pass."""
        now = now or datetime.now()
        timestamp_ms = int(now.timestamp() * 1000)

        path = PurePath(context.original_path)
        ext = path.suffix
        filename = path.stem

        date = now.strftime("%Y-%m-%d")
        clock = now.strftime("%H-%M-%S")

        def substitute(match: re.Match) -> str:
            name, length = match.group(1), match.group(2)

            if name == "timestamp":
                return str(timestamp_ms)
            if name == "date":
                return date
            if name == "time":
                return clock
            if name == "datetime":
                return f"{date}_{clock}"
            if name == "filename":
                return filename
            if name == "ext":
                return ext
            if name == "profile":
                return sanitize_profile_name(context.profile_name)
            if name == "counter":
                self._counter += 1
                return f"{self._counter:04d}"
            if name == "hash":
                size = int(length) if length else DEFAULT_HASH_LENGTH
                return context.file_hash[:size]
            if name == "random":
                size = int(length) if length else DEFAULT_RANDOM_LENGTH
                return "".join(random.choices(_RANDOM_ALPHABET, k=size))

            # unknown variables stay verbatim
            return match.group(0)

        return _TOKEN_RE.sub(substitute, pattern)

    def example(self, pattern: str) -> str:
        """Render a pattern against a fixed sample context for previews."""
        return self.render(pattern, EXAMPLE_CONTEXT)
