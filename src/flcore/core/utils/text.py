"""Text processing utilities."""

import re
from html.parser import HTMLParser

from flcore.core.constants import TITLE_EXTRACT_LENGTH, TITLE_TAIL


def snake_case(name: str) -> str:
    """Convert a CamelCase class name to snake_case.

    Args:
        name: The class name

    Returns:
        The snake_case form

    Examples:
        >>> snake_case("ActorGroup")
        'actor_group'
        >>> snake_case("HTTPResponse")
        'http_response'
    """
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s)
    return s.replace("-", "_").lower()


class _TextExtractor(HTMLParser):
    """Collects text nodes, skipping script and style elements."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip = 0

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if tag in ("script", "style"):
            self._skip += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in ("script", "style") and self._skip > 0:
            self._skip -= 1

    def handle_data(self, data: str) -> None:
        if self._skip == 0:
            self.parts.append(data)


def html_text(contents: str | None) -> str:
    """Return the text nodes of an HTML fragment, concatenated."""
    if not contents:
        return ""
    parser = _TextExtractor()
    parser.feed(contents)
    parser.close()
    return "".join(parser.parts)


def extract_title(
    contents: str | None,
    max_length: int = TITLE_EXTRACT_LENGTH,
    tail: str | None = TITLE_TAIL,
) -> str:
    """Extract a title from HTML contents.

    Args:
        contents: HTML fragment
        max_length: Maximum title length, including ``tail``
        tail: Appended when the text is truncated; None for no tail

    Returns:
        The text of ``contents``, truncated to ``max_length`` characters

    Examples:
        >>> extract_title("<p>Hello <b>world</b></p>")
        'Hello world'
    """
    text = html_text(contents)
    limit = max_length - len(tail) if tail else max_length
    if len(text) > limit:
        text = text[:limit] + (tail or "")
    return text
