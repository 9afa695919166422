# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import html
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from shared.constants import MAX_TEXT_LENGTH

logger = logging.getLogger(__name__)

# Removed together with everything inside them.
FORBIDDEN_TAGS = [
    "script",
    "style",
    "iframe",
    "object",
    "embed",
    "form",
    "input",
    "button",
    "textarea",
    "select",
    "noscript",
    "template",
]

BLOCK_TAGS = [
    "p",
    "div",
    "br",
    "li",
    "blockquote",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
]

_WHITESPACE = re.compile(r"\s+")
_SCHEME = re.compile(r"^([a-z][a-z0-9+.\-]*):")
_UNSAFE_STYLE_VALUE = re.compile(r"url\(|expression\(|javascript:", re.IGNORECASE)


@dataclass(frozen=True)
class SanitizerProfile:
    name: str
    allowed_tags: frozenset[str]
    allowed_attributes: frozenset[str]
    allowed_style_props: frozenset[str] = frozenset()
    allowed_schemes: tuple[str, ...] = ("http", "https")
    allow_relative_urls: bool = False


TEXT = SanitizerProfile(
    name="text", allowed_tags=frozenset(), allowed_attributes=frozenset()
)

RICH_TEXT = SanitizerProfile(
    name="richText",
    allowed_tags=frozenset(
        {
            "p",
            "br",
            "strong",
            "em",
            "i",
            "b",
            "u",
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
            "span",
            "div",
        }
    ),
    allowed_attributes=frozenset({"href", "class", "style"}),
    allowed_style_props=frozenset(
        {
            "text-align",
            "color",
            "font-weight",
            "font-style",
            "text-decoration",
            "margin",
            "padding",
        }
    ),
    allowed_schemes=("http", "https", "mailto", "tel"),
    allow_relative_urls=True,
)

OBITUARY = RICH_TEXT

MESSAGE = SanitizerProfile(
    name="message",
    allowed_tags=frozenset({"p", "br", "strong", "em", "a"}),
    allowed_attributes=frozenset({"href"}),
)

PROFILES = {
    "text": TEXT,
    "richText": RICH_TEXT,
    "obituary": OBITUARY,
    "message": MESSAGE,
}


def _resolve_profile(profile: SanitizerProfile | str) -> SanitizerProfile:
    if isinstance(profile, SanitizerProfile):
        return profile
    try:
        return PROFILES[profile]
    except KeyError:
        raise ValueError(f"Unknown sanitizer profile: {profile}") from None


def _parse(value: str) -> BeautifulSoup:
    soup = BeautifulSoup(value, "html.parser")
    for node in soup.find_all(
        string=lambda s: isinstance(
            s, (Comment, CData, Declaration, Doctype, ProcessingInstruction)
        )
    ):
        node.extract()
    for tag in soup.find_all(FORBIDDEN_TAGS):
        if not tag.decomposed:
            tag.decompose()
    return soup


def _text_content(soup: BeautifulSoup) -> str:
    # Keep words from adjacent blocks apart once the tags are gone.
    for tag in soup.find_all(BLOCK_TAGS):
        tag.append(" ")
    return _WHITESPACE.sub(" ", soup.get_text()).strip()


def _safe_href(value: str, profile: SanitizerProfile) -> str | None:
    candidate = value.strip()
    compact = re.sub(r"[\x00-\x20]", "", candidate).lower()
    match = _SCHEME.match(compact)
    if match:
        return candidate if match.group(1) in profile.allowed_schemes else None
    return candidate if profile.allow_relative_urls and candidate else None


def _clean_style(value: str, allowed_props: frozenset[str]) -> str:
    kept = []
    for declaration in value.split(";"):
        prop, sep, prop_value = declaration.partition(":")
        prop = prop.strip().lower()
        prop_value = prop_value.strip()
        if not sep or prop not in allowed_props or not prop_value:
            continue
        if _UNSAFE_STYLE_VALUE.search(prop_value):
            continue
        kept.append(f"{prop}: {prop_value}")
    return "; ".join(kept)


def _clean_attributes(tag, profile: SanitizerProfile) -> None:
    for attr in list(tag.attrs):
        value = tag.attrs[attr]
        if attr not in profile.allowed_attributes:
            del tag.attrs[attr]
        elif attr == "href":
            href = _safe_href(str(value), profile)
            if href:
                tag.attrs["href"] = href
            else:
                del tag.attrs["href"]
        elif attr == "style":
            style = _clean_style(str(value), profile.allowed_style_props)
            if style:
                tag.attrs["style"] = style
            else:
                del tag.attrs["style"]

    href = tag.attrs.get("href", "")
    if tag.name == "a" and href.lower().startswith(("http://", "https://")):
        tag.attrs["target"] = "_blank"
        tag.attrs["rel"] = "noopener noreferrer"


def sanitize_plain_text(value: str | None) -> str:
    """
    Reduces user input to plain text for names, captions and notes.

    Markup is stripped (script and style bodies are dropped entirely),
    whitespace is collapsed and the result is truncated to MAX_TEXT_LENGTH.

    Args:
        value (str | None): Raw user input.

    Returns:
        str: Plain, unescaped text. Never raises; unparseable input yields "".
    """
    if not value:
        return ""
    try:
        text = _text_content(_parse(str(value)))
    except Exception:
        logger.warning("Dropping text input that could not be sanitized", exc_info=True)
        return ""
    return text[:MAX_TEXT_LENGTH].strip()


def sanitize_rich_text(
    value: str | None, profile: SanitizerProfile | str = RICH_TEXT
) -> str:
    """
    Removes every tag and attribute outside the profile's allow-list.

    Disallowed tags are unwrapped (their text is kept) except for the
    FORBIDDEN_TAGS, which are removed with their content. The "text" profile
    returns escaped text content, safe to inject into markup.
    """
    profile = _resolve_profile(profile)
    if not value:
        return ""
    try:
        soup = _parse(str(value))
        if not profile.allowed_tags:
            return html.escape(_text_content(soup), quote=False)
        for tag in soup.find_all(True):
            if tag.name not in profile.allowed_tags:
                tag.unwrap()
            else:
                _clean_attributes(tag, profile)
        return str(soup).strip()
    except Exception:
        logger.warning(
            "Dropping %s content that could not be sanitized", profile.name, exc_info=True
        )
        return ""


def sanitize_message(value: str | None) -> str:
    return sanitize_rich_text(value, MESSAGE)


def sanitize_url(value: str | None) -> str:
    """Returns the URL when it is an absolute http(s) URL, otherwise ""."""
    if not value:
        return ""
    candidate = value.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return ""
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return ""
    return candidate


def html_to_text(value: str | None) -> str:
    """Text content of sanitized HTML, without the plain-text length cap."""
    if not value:
        return ""
    try:
        return _text_content(_parse(value))
    except Exception:
        logger.warning("Could not extract text from HTML", exc_info=True)
        return ""
