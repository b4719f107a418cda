"""HTML post body → normalized plain text.

Discourse serves post bodies as "cooked" HTML. The extractor:
- parses with BeautifulSoup's lenient ``html.parser`` (never raises on bad markup),
- drops ``script`` / ``style`` subtrees and comment-like nodes,
- emits one space after every block-level element so ``<p>a</p><p>b</p>``
  reads ``a b`` instead of ``ab``,
- squeezes whitespace and trims the result.

Input without ``<`` or ``&`` cannot contain markup or entities, so it skips
parsing entirely and only gets the whitespace pass.
"""

from __future__ import annotations

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

from forum_digest.text.whitespace import squeeze_whitespace

BLOCK_ELEMENTS: frozenset[str] = frozenset(
    [
        "address", "article", "aside", "blockquote", "br", "canvas", "dd",
        "div", "dl", "dt", "fieldset", "figcaption", "figure", "footer",
        "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li",
        "main", "nav", "noscript", "ol", "output", "p", "pre", "section",
        "table", "td", "tfoot", "th", "tr", "ul", "video",
    ]
)

SKIPPED_ELEMENTS: frozenset[str] = frozenset(["script", "style"])

_PARSER = "html.parser"

# Pushed onto the walk stack after a block element's children.
_SEPARATOR = object()


def extract_text(html: str) -> str:
    """Return the readable text of *html* on a single normalized line.

    Args:
        html: An HTML fragment or document. Malformed markup is tolerated.

    Returns:
        Plain text with entities decoded, no leading/trailing whitespace, and
        every whitespace run collapsed to one space. May be empty.
    """
    if "<" not in html and "&" not in html:
        return squeeze_whitespace(html, strip=True)

    soup = BeautifulSoup(html, _PARSER)
    return squeeze_whitespace(_render(soup), strip=True)


def _render(root: Tag) -> str:
    """Depth-first text rendering of *root*.

    Iterative so deeply nested posts cannot hit the recursion limit.
    """
    parts: list[str] = []
    stack: list[object] = [root]

    while stack:
        node = stack.pop()
        if node is _SEPARATOR:
            parts.append(" ")
            continue
        if isinstance(node, NavigableString):
            # Comments, CDATA, doctypes and processing instructions carry no prose.
            if not isinstance(node, PreformattedString):
                parts.append(str(node))
            continue
        if not isinstance(node, Tag):
            continue

        name = (node.name or "").lower()
        if name in SKIPPED_ELEMENTS:
            continue
        if name in BLOCK_ELEMENTS:
            stack.append(_SEPARATOR)
        stack.extend(reversed(node.contents))

    return "".join(parts)
