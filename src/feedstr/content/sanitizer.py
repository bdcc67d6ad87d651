import html
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Comment

# Dropped together with everything inside them
_DROPPED_TAGS = [
    "script",
    "style",
    "iframe",
    "object",
    "embed",
    "noscript",
    "template",
    "form",
    "input",
    "button",
    "select",
    "textarea",
    "svg",
    "math",
    "head",
    "meta",
    "link",
    "base",
]

_IMG_ATTRS = ("src", "alt", "width", "height")
_IMG_SCHEMES = {"http", "https"}
_LINK_SCHEMES = {"http", "https", "mailto"}

_IMG_RE = re.compile(r'<img\b[^>]*?\bsrc="(https?://[^"]+)"[^>]*?/?>', re.IGNORECASE)
_LINK_RE = re.compile(
    r'<a\b[^>]*?\bhref="([^"]+)"[^>]*>.*?</a>', re.IGNORECASE | re.DOTALL
)


def _scheme(url: str) -> str:
    return urlparse(url.strip()).scheme.lower()


def sanitize_html(markup: str) -> str:
    """Reduce untrusted feed HTML to text, images and links."""
    if not markup:
        return ""

    soup = BeautifulSoup(markup, "html.parser")

    for element in soup.find_all(_DROPPED_TAGS):
        element.decompose()

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        if tag.name == "img":
            src = tag.get("src", "")
            if not src or _scheme(src) not in _IMG_SCHEMES:
                tag.decompose()
                continue
            tag.attrs = {key: tag[key] for key in _IMG_ATTRS if tag.has_attr(key)}
        elif tag.name == "a":
            href = tag.get("href", "")
            if href and _scheme(href) in _LINK_SCHEMES:
                tag.attrs = {"href": href, "rel": "nofollow"}
            else:
                tag.unwrap()
        else:
            tag.unwrap()

    return str(soup).strip()


def flatten_html(markup: str) -> str:
    """Turn sanitized markup into plain text with media and links as bare URLs."""
    text = _IMG_RE.sub(r"\1\n", markup)
    text = _LINK_RE.sub(r"\1\n", text)
    return html.unescape(text)
