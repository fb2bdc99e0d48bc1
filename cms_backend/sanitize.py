"""
HTML sanitization and input validation for CMS content.

Rich text is cleaned by a tree walk: parse with BeautifulSoup, filter nodes
and attributes against an allow-list, then serialize. Parsing collapses
whitespace-only text, so unwrapping can leave output that parses to a
different tree; both sanitizers repeat the pass until the output is stable,
which makes them idempotent.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

CONTENT_MAX_LENGTH = 10 * 1024 * 1024  # 10MB
KEY_MAX_LENGTH = 255
TITLE_MAX_LENGTH = 500
EXCERPT_MAX_LENGTH = 1000
SLUG_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000

ALLOWED_TAGS = frozenset(
    {
        "p",
        "br",
        "strong",
        "em",
        "u",
        "s",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "ul",
        "ol",
        "li",
        "blockquote",
        "a",
        "img",
        "code",
        "pre",
        "span",
        "div",
        "table",
        "thead",
        "tbody",
        "tr",
        "th",
        "td",
        "hr",
    }
)

ALLOWED_ATTRIBUTES = frozenset(
    {
        "href",
        "title",
        "alt",
        "src",
        "width",
        "height",
        "class",
        "id",
        "target",
        "rel",
    }
)

URL_ATTRIBUTES = frozenset({"href", "src"})

# Removed together with everything inside them.
FORBIDDEN_TAGS = frozenset(
    {
        "script",
        "iframe",
        "object",
        "embed",
        "form",
        "input",
        "button",
        "style",
        "noscript",
        "template",
        "textarea",
        "select",
        "svg",
        "math",
        "frame",
        "frameset",
        "applet",
        "link",
        "meta",
        "base",
        "title",
    }
)

ANCHOR_REL_TOKENS = ("noopener", "noreferrer")

_MAX_PASSES = 4

_ALLOWED_URI = re.compile(
    r"^(?:(?:(?:f|ht)tps?|mailto|tel|callto|sms|cid|xmpp|data):"
    r"|[^a-z]"
    r"|[a-z+.\-]+(?:[^a-z+.\-:]|$))",
    re.IGNORECASE,
)
_DENIED_SCHEME = re.compile(r"^(?:javascript|vbscript|data):", re.IGNORECASE)
# Browsers ignore these inside URLs, so "java\tscript:" must be caught too.
_URI_IGNORED_CHARS = re.compile(
    r"[\x00-\x20\x7f\u00a0\u1680\u180e\u2000-\u2029\u205f\u3000\ufeff]"
)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class SanitizedContent:
    sanitized: str
    is_valid: bool
    error: Optional[str] = None


def is_safe_url(value: str) -> bool:
    """Return True when a URL attribute value may be kept."""
    compact = _URI_IGNORED_CHARS.sub("", value)
    if _DENIED_SCHEME.match(compact):
        return False
    return bool(_ALLOWED_URI.match(compact))


def _is_markup_string(node: Any) -> bool:
    return isinstance(node, PreformattedString)


def _is_blank(tag: Tag) -> bool:
    for child in tag.children:
        if isinstance(child, Tag):
            return False
        if str(child).strip():
            return False
    return True


def _clean_attributes(tag: Tag) -> bool:
    """
    Filter attributes in place. Returns False when the whole element must go
    (an anchor pointing at a denied URL).
    """
    for name in list(tag.attrs):
        value = tag.attrs[name]
        if name not in ALLOWED_ATTRIBUTES:
            del tag.attrs[name]
            continue
        if name not in URL_ATTRIBUTES:
            continue
        if isinstance(value, list):
            value = " ".join(value)
        if not value.strip():
            del tag.attrs[name]
            continue
        if not is_safe_url(value):
            if tag.name == "a":
                return False
            del tag.attrs[name]
    return True


def _add_anchor_rel(tag: Tag) -> None:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    tokens = list(rel)
    present = {token.lower() for token in tokens}
    for token in ANCHOR_REL_TOKENS:
        if token not in present:
            tokens.append(token)
    tag["rel"] = tokens


def _clean_tag(tag: Tag) -> None:
    if tag.name in FORBIDDEN_TAGS:
        tag.decompose()
        return
    if tag.name not in ALLOWED_TAGS:
        _clean_children(tag)
        tag.unwrap()
        return
    if not _clean_attributes(tag):
        tag.decompose()
        return
    _clean_children(tag)
    if tag.name != "a":
        return
    if "href" not in tag.attrs:
        tag.unwrap()
    elif _is_blank(tag):
        tag.decompose()
    else:
        _add_anchor_rel(tag)


def _clean_children(parent: Tag) -> None:
    for node in list(parent.children):
        if isinstance(node, Tag):
            _clean_tag(node)
        elif _is_markup_string(node):
            # comments, doctypes, CDATA, processing instructions
            node.extract()


def _clean_markup(markup: str) -> str:
    soup = BeautifulSoup(markup, "html.parser")
    _clean_children(soup)
    return soup.decode(formatter="minimal")


def _settle(clean: Callable[[str], str], value: str) -> str:
    # Re-run until parsing the output no longer changes it.
    result = clean(value)
    for _ in range(_MAX_PASSES):
        again = clean(result)
        if again == result:
            break
        result = again
    return result


def sanitize_rich_text(value: Any) -> str:
    """
    Clean untrusted WYSIWYG HTML down to the allowed tags and attributes.

    Never raises; anything that is not a non-empty string yields "".
    """
    if not value or not isinstance(value, str):
        return ""
    return _settle(_clean_markup, value)


def _text_nodes(parent: Tag) -> Iterator[str]:
    for node in parent.children:
        if isinstance(node, Tag):
            if node.name in FORBIDDEN_TAGS:
                continue
            yield from _text_nodes(node)
        elif isinstance(node, NavigableString) and not _is_markup_string(node):
            yield str(node)


def _strip_markup(markup: str) -> str:
    soup = BeautifulSoup(markup, "html.parser")
    return html.escape("".join(_text_nodes(soup)), quote=False)


def sanitize_plain_text(value: Any) -> str:
    """Strip all markup, keeping text content (HTML-escaped)."""
    if not value or not isinstance(value, str):
        return ""
    return _settle(_strip_markup, value)


def validate_length(value: Any, max_length: int, field_name: str) -> ValidationResult:
    if not isinstance(value, str):
        return ValidationResult(False, f"{field_name} must be a string")
    if len(value) > max_length:
        return ValidationResult(
            False,
            f"{field_name} exceeds maximum length of {max_length} characters "
            f"(received {len(value)})",
        )
    if len(value) == 0:
        return ValidationResult(False, f"{field_name} cannot be empty")
    return ValidationResult(True)


def validate_content(value: Any, max_length: int = CONTENT_MAX_LENGTH) -> ValidationResult:
    """Like validate_length for "Content", but empty content is allowed."""
    if not isinstance(value, str):
        return ValidationResult(False, "Content must be a string")
    if len(value) > max_length:
        return ValidationResult(
            False,
            f"Content exceeds maximum length of {max_length} characters "
            f"(received {len(value)})",
        )
    return ValidationResult(True)


def validate_and_sanitize_content(value: Any) -> SanitizedContent:
    result = validate_content(value)
    if not result.is_valid:
        return SanitizedContent(sanitized="", is_valid=False, error=result.error)
    return SanitizedContent(sanitized=sanitize_rich_text(value), is_valid=True)
