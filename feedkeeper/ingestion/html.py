"""Flatten feed description HTML into readable plain text."""

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

HEADINGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
BLOCKS = {"p", "div"}
INLINE = {"b", "i", "strong", "em", "small", "span", "pre", "code"}
LISTS = {"ul", "ol"}


def _flatten_children(node: Tag, trim: bool = True) -> str:
    flat = "".join(_flatten_node(child) for child in node.children)
    return flat.lstrip() if trim else flat


def _flatten_node(node) -> str:
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        # Doctype, CData and processing instructions are NavigableStrings too
        if type(node) is not NavigableString:
            return ""
        return str(node)
    if not isinstance(node, Tag):
        return ""

    name = node.name
    if name in HEADINGS:
        return "#" * int(name[1]) + " " + _flatten_children(node) + "\n\n"
    if name in BLOCKS:
        return _flatten_children(node) + "\n\n"
    if name in INLINE:
        return _flatten_children(node)
    if name in LISTS:
        return "\n" + _flatten_children(node) + "\n"
    if name == "li":
        return "- " + _flatten_children(node) + "\n"
    if name == "a":
        text = _flatten_children(node)
        href = node.get("href")
        return f"{text} ({href})" if href else text

    # Unknown tags are dropped along with their content
    return ""


def flatten_html(content: str) -> str:
    """Convert an HTML fragment to a flattened plain-text projection.

    Headings become ``#``-prefixed lines, paragraphs and divs become blocks
    terminated by a blank line, list entries become ``- `` lines and anchors
    render as ``text (href)``. Entities are decoded; unknown tags are
    discarded.
    """
    if not content:
        return ""
    soup = BeautifulSoup(content, "html.parser")
    return "".join(_flatten_node(node) for node in soup.contents)
