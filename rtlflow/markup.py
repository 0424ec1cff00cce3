"""Loading HTML into a live tree and writing it back out."""

from __future__ import annotations

import html
import pathlib
from typing import TYPE_CHECKING, Dict, Optional

from bs4 import BeautifulSoup, Comment as SoupComment, Doctype, NavigableString, Tag
from bs4.element import PreformattedString

from .dom import Comment, Document, Element, IFrameElement, Node, Text

if TYPE_CHECKING:  # pragma: no cover
    from .scheduler import Host

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})
SAME_ORIGIN_SCHEMES = ("about:",)


def _build_frame(attributes: Dict[str, str], host: Optional["Host"]) -> IFrameElement:
    srcdoc = attributes.get("srcdoc")
    src = attributes.get("src", "")
    if srcdoc is not None:
        frame_document = parse_html(srcdoc, url="about:srcdoc", host=host)
        return IFrameElement(attributes, document=frame_document)
    if not src or src.startswith(SAME_ORIGIN_SCHEMES):
        return IFrameElement(
            attributes,
            document=Document(url=src or "about:blank", host=host, ready_state="loading"),
        )
    return IFrameElement(attributes, same_origin=False)


def _copy_children(source: Tag, parent: Node, document: Document) -> None:
    """Mirror the children of a parsed soup node into the live tree."""

    for child in source.children:
        if isinstance(child, Doctype):
            document.doctype = str(child)
        elif isinstance(child, SoupComment):
            parent.append_child(Comment(str(child)))
        elif isinstance(child, PreformattedString):
            # CDATA sections, processing instructions and declarations.
            continue
        elif isinstance(child, NavigableString):
            parent.append_child(Text(str(child)))
        elif isinstance(child, Tag):
            attributes = {name: value or "" for name, value in child.attrs.items()}
            if child.name == "iframe":
                element: Element = _build_frame(attributes, document.host)
            else:
                element = Element(child.name, attributes)
            parent.append_child(element)
            _copy_children(child, element, document)


def parse_html(
    markup: str,
    *,
    url: str = "about:blank",
    host: Optional["Host"] = None,
    ready_state: str = "loading",
) -> Document:
    """Parse markup into a new document; frames with ``srcdoc`` get their own."""

    soup = BeautifulSoup(markup, "html.parser", multi_valued_attributes=None)
    document = Document(url=url, host=host, ready_state=ready_state)
    _copy_children(soup, document, document)
    return document


def load_html(path: pathlib.Path, *, host: Optional["Host"] = None) -> Document:
    return parse_html(
        path.read_text(encoding="utf-8"),
        url=path.resolve().as_uri(),
        host=host,
    )


def complete_loading(document: Document) -> None:
    """Fire DOMContentLoaded/load on the document, then on each of its frames."""

    if document.ready_state != "complete":
        document.finish_loading()
    for element in list(document.iter_elements()):
        if not isinstance(element, IFrameElement):
            continue
        if element.same_origin:
            frame_document = element.content_document
            if frame_document is not None and frame_document.ready_state != "complete":
                complete_loading(frame_document)
        element.dispatch_event("load")


def _serialise_attributes(element: Element) -> str:
    attributes = dict(element.attributes)
    if isinstance(element, IFrameElement) and "srcdoc" in attributes:
        if element.same_origin and element.content_document is not None:
            attributes["srcdoc"] = serialise(element.content_document)
    if len(element.style):
        attributes["style"] = element.style.css_text()
    parts = []
    for name, value in attributes.items():
        parts.append(f' {name}="{html.escape(value, quote=True)}"')
    return "".join(parts)


def serialise(node: Node) -> str:
    """Render a node (or whole document) back into HTML."""

    if isinstance(node, Document):
        prefix = f"<!DOCTYPE {node.doctype}>" if node.doctype else ""
        return prefix + "".join(serialise(child) for child in node.children)
    if isinstance(node, Text):
        parent = node.parent_element
        if parent is not None and parent.tag in RAW_TEXT_ELEMENTS:
            return node.data
        return html.escape(node.data, quote=False)
    if isinstance(node, Comment):
        return f"<!--{node.data}-->"
    if isinstance(node, Element):
        opening = f"<{node.tag}{_serialise_attributes(node)}>"
        if node.tag in VOID_ELEMENTS:
            return opening
        inner = "".join(serialise(child) for child in node.children)
        return f"{opening}{inner}</{node.tag}>"
    return ""
