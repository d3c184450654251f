"""
Markdown image reference discovery and rewriting.

An image reference is ``![alt](inside)``. ``inside`` is kept verbatim
as the *token*: that exact string is what gets replaced by the remote
URL, and what undo writes back. Only for locating the file on disk is
it cleaned up:

    ![a](<my image.png> "Title")  ->  token  '<my image.png> "Title"'
                                      url    'my image.png'

    ![a](photos/caf%C3%A9.png)    ->  token  'photos/caf%C3%A9.png'
                                      path   'photos/café.png'
"""

import re
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import unquote

IMAGE_RE = re.compile(r"!\[.*?\]\((.*?)\)")
_TITLE_RE = re.compile(r"""^(?P<url>.*?)\s+(?P<quote>["']).*(?P=quote)$""", re.DOTALL)
_REMOTE_PREFIXES = ("http://", "https://")


@dataclass(frozen=True)
class ImageReference:
    """One markdown image occurrence."""
    token: str
    url: str
    start: int
    end: int

    @property
    def decoded_path(self) -> str:
        """Percent-decoded URL, for filesystem lookups only."""
        return unquote(self.url)

    @property
    def is_remote(self) -> bool:
        return self.decoded_path.lower().startswith(_REMOTE_PREFIXES)


def extract_url(token: str) -> str:
    """
    Strip an optional trailing quoted title and one pair of angle brackets.

    The result is still percent-encoded.
    """
    url = token.strip()
    match = _TITLE_RE.match(url)
    if match:
        url = match.group("url").strip()
    if len(url) >= 2 and url.startswith("<") and url.endswith(">"):
        url = url[1:-1]
    return url


def find_image_references(text: str) -> list[ImageReference]:
    """Every image reference in document order, duplicates included."""
    return [
        ImageReference(
            token=match.group(1),
            url=extract_url(match.group(1)),
            start=match.start(1),
            end=match.end(1),
        )
        for match in IMAGE_RE.finditer(text)
    ]


def apply_substitutions(text: str, replacements: Iterable[tuple[str, str]]) -> tuple[str, set[str]]:
    """
    Replace every occurrence of each token with its URL in one pass.

    All tokens are matched together (longest first), so a URL inserted
    for one token is never rescanned for another, and a token that is a
    prefix of another can't clobber it. Returns the new text and the
    set of tokens that were actually found.
    """
    mapping: dict[str, str] = {}
    for token, url in replacements:
        if token:
            mapping.setdefault(token, url)

    if not mapping:
        return text, set()

    pattern = re.compile(
        "|".join(re.escape(token) for token in sorted(mapping, key=len, reverse=True))
    )
    found: set[str] = set()

    def substitute(match: re.Match) -> str:
        token = match.group(0)
        found.add(token)
        return mapping[token]

    return pattern.sub(substitute, text), found
