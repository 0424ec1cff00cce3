"""A small live document tree with batched mutation notifications.

The tree mirrors the parts of a browser DOM the engine relies on: elements
with attributes and inline styles, text nodes, embedded frames and mutation
observers. Mutation records are queued per observer and delivered as one
batch, either explicitly through :meth:`Document.deliver_mutations` or on the
next ``call_soon`` tick of the host attached to the document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from .errors import DocumentAccessError

if TYPE_CHECKING:  # pragma: no cover
    from .scheduler import Host


Listener = Callable[[], None]
StyleResolver = Callable[["Element"], Dict[str, str]]

INHERITED_STYLE_DEFAULTS = {"visibility": "visible"}


@dataclass
class MutationRecord:
    """Describes one change observed in the tree."""

    type: str
    target: "Node"
    added_nodes: List["Node"] = field(default_factory=list)
    removed_nodes: List["Node"] = field(default_factory=list)
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None


@dataclass
class _Observation:
    target: "Node"
    child_list: bool
    subtree: bool
    character_data: bool
    attributes: bool
    attribute_filter: Optional[Set[str]]


class MutationObserver:
    """Collects mutation records for the nodes it observes."""

    def __init__(self, callback: Callable[[List[MutationRecord]], None]) -> None:
        self.callback = callback
        self._observations: List[_Observation] = []
        self._pending: List[MutationRecord] = []
        self._document: Optional[Document] = None

    def observe(
        self,
        target: "Node",
        *,
        child_list: bool = False,
        subtree: bool = False,
        character_data: bool = False,
        attributes: bool = False,
        attribute_filter: Optional[Sequence[str]] = None,
    ) -> None:
        document = target if isinstance(target, Document) else target.owner_document
        if document is None:
            raise DocumentAccessError("Cannot observe a node outside of a document.")
        if not (child_list or character_data or attributes):
            raise ValueError("At least one mutation type must be observed.")
        self._observations.append(
            _Observation(
                target=target,
                child_list=child_list,
                subtree=subtree,
                character_data=character_data,
                attributes=attributes or attribute_filter is not None,
                attribute_filter=set(attribute_filter) if attribute_filter else None,
            )
        )
        self._document = document
        document._register_observer(self)

    def disconnect(self) -> None:
        if self._document is not None:
            self._document._unregister_observer(self)
        self._observations.clear()
        self._pending.clear()
        self._document = None

    def take_records(self) -> List[MutationRecord]:
        records, self._pending = self._pending, []
        return records

    def _matches(self, record: MutationRecord) -> bool:
        for observation in self._observations:
            if record.target is not observation.target:
                if not observation.subtree or not observation.target.contains(
                    record.target
                ):
                    continue
            if record.type == "childList" and observation.child_list:
                return True
            if record.type == "characterData" and observation.character_data:
                return True
            if record.type == "attributes" and observation.attributes:
                allowed = observation.attribute_filter
                if allowed is None or record.attribute_name in allowed:
                    return True
        return False

    def _enqueue(self, record: MutationRecord) -> bool:
        if self._matches(record):
            self._pending.append(record)
            return True
        return False


class Node:
    """Base class for everything that can live in the tree."""

    def __init__(self) -> None:
        self.parent: Optional[Node] = None
        self.owner_document: Optional[Document] = None
        self.children: List[Node] = []

    @property
    def parent_element(self) -> Optional["Element"]:
        parent = self.parent
        return parent if isinstance(parent, Element) else None

    @property
    def is_connected(self) -> bool:
        node: Optional[Node] = self
        while node is not None:
            if isinstance(node, Document):
                return True
            node = node.parent
        return False

    @property
    def text_content(self) -> str:
        return "".join(child.text_content for child in self.children)

    def contains(self, other: Optional["Node"]) -> bool:
        node = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def iter_descendants(self) -> Iterator["Node"]:
        for child in list(self.children):
            yield child
            yield from child.iter_descendants()

    def iter_elements(self) -> Iterator["Element"]:
        for node in self.iter_descendants():
            if isinstance(node, Element):
                yield node

    def append_child(self, child: "Node") -> "Node":
        return self.insert_before(child, None)

    def insert_before(self, child: "Node", reference: Optional["Node"]) -> "Node":
        if isinstance(child, Document):
            raise ValueError("A document cannot be inserted into a tree.")
        if child.contains(self):
            raise ValueError("A node cannot be inserted into its own subtree.")
        if child.parent is not None:
            child.parent.remove_child(child)
        if reference is None:
            self.children.append(child)
        else:
            self.children.insert(self.children.index(reference), child)
        child.parent = self
        child._adopt(self.owner_document if not isinstance(self, Document) else self)
        self._notify(MutationRecord(type="childList", target=self, added_nodes=[child]))
        return child

    def remove_child(self, child: "Node") -> "Node":
        self.children.remove(child)
        child.parent = None
        self._notify(
            MutationRecord(type="childList", target=self, removed_nodes=[child])
        )
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def _adopt(self, document: Optional["Document"]) -> None:
        self.owner_document = document
        for child in self.children:
            child._adopt(document)

    def _notify(self, record: MutationRecord) -> None:
        document = self if isinstance(self, Document) else self.owner_document
        if document is not None and self.is_connected:
            document._queue_record(record)


class Text(Node):
    """A run of character data."""

    def __init__(self, data: str = "") -> None:
        super().__init__()
        self._data = data

    @property
    def data(self) -> str:
        return self._data

    @data.setter
    def data(self, value: str) -> None:
        old_value, self._data = self._data, value
        self._notify(
            MutationRecord(type="characterData", target=self, old_value=old_value)
        )

    @property
    def text_content(self) -> str:
        return self._data

    def __repr__(self) -> str:
        return f"Text({self._data[:30]!r})"


class Comment(Node):
    """A comment; kept for serialisation, contributes no text."""

    def __init__(self, data: str = "") -> None:
        super().__init__()
        self.data = data

    @property
    def text_content(self) -> str:
        return ""


class Style:
    """Inline style declarations of an element, kept in insertion order."""

    def __init__(self, declarations: Optional[Dict[str, str]] = None) -> None:
        self._declarations: Dict[str, str] = dict(declarations or {})

    @classmethod
    def parse(cls, css_text: str) -> "Style":
        declarations: Dict[str, str] = {}
        for chunk in css_text.split(";"):
            name, sep, value = chunk.partition(":")
            if not sep:
                continue
            name = name.strip().lower()
            value = value.strip()
            if name and value:
                declarations[name] = value
        return cls(declarations)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._declarations.get(name, default)

    def set(self, name: str, value: Optional[str]) -> None:
        if value is None or value == "":
            self._declarations.pop(name, None)
        else:
            self._declarations[name] = value

    def remove(self, name: str) -> None:
        self._declarations.pop(name, None)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._declarations.items())

    def css_text(self) -> str:
        return "; ".join(f"{name}: {value}" for name, value in self._declarations.items())

    def __contains__(self, name: object) -> bool:
        return name in self._declarations

    def __len__(self) -> int:
        return len(self._declarations)


class Element(Node):
    """An element with attributes, inline style and an optional layout box."""

    def __init__(
        self,
        tag: str,
        attributes: Optional[Dict[str, str]] = None,
        *,
        layout: Optional[Tuple[float, float]] = None,
    ) -> None:
        super().__init__()
        self.tag = tag.lower()
        attributes = dict(attributes or {})
        self.style = Style.parse(attributes.pop("style", ""))
        self.attributes: Dict[str, str] = attributes
        # None means "not measured"; the host has not reported a box.
        self.layout = layout
        self._listeners: Dict[str, List[Listener]] = {}

    def __repr__(self) -> str:
        return f"<{self.tag} {self.attributes!r}>"

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name.lower())

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self.attributes

    def set_attribute(self, name: str, value: str) -> None:
        name = name.lower()
        old_value = self.attributes.get(name)
        self.attributes[name] = value
        self._notify(
            MutationRecord(
                type="attributes",
                target=self,
                attribute_name=name,
                old_value=old_value,
            )
        )

    def remove_attribute(self, name: str) -> None:
        name = name.lower()
        if name not in self.attributes:
            return
        old_value = self.attributes.pop(name)
        self._notify(
            MutationRecord(
                type="attributes",
                target=self,
                attribute_name=name,
                old_value=old_value,
            )
        )

    @property
    def class_list(self) -> List[str]:
        return (self.get_attribute("class") or "").split()

    @property
    def text_content(self) -> str:
        return super().text_content

    @text_content.setter
    def text_content(self, value: str) -> None:
        for child in list(self.children):
            self.remove_child(child)
        if value:
            self.append_child(Text(value))

    @property
    def value(self) -> str:
        if self.tag == "textarea" and "value" not in self.attributes:
            return self.text_content
        return self.attributes.get("value", "")

    @value.setter
    def value(self, value: str) -> None:
        self.set_attribute("value", value)

    @property
    def placeholder(self) -> str:
        return self.attributes.get("placeholder", "")

    def add_event_listener(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def remove_event_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def dispatch_event(self, event: str) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener()

    def ancestors(self) -> Iterator["Element"]:
        parent = self.parent_element
        while parent is not None:
            yield parent
            parent = parent.parent_element


class IFrameElement(Element):
    """An embedded frame hosting its own document."""

    def __init__(
        self,
        attributes: Optional[Dict[str, str]] = None,
        *,
        document: Optional["Document"] = None,
        same_origin: bool = True,
        layout: Optional[Tuple[float, float]] = None,
    ) -> None:
        super().__init__("iframe", attributes, layout=layout)
        self._content_document = document
        self.same_origin = same_origin

    @property
    def content_document(self) -> Optional["Document"]:
        if not self.same_origin:
            raise DocumentAccessError(
                f"Blocked access to cross-origin frame {self.get_attribute('src')!r}."
            )
        return self._content_document

    def finish_loading(self) -> None:
        """Mark the embedded document complete and fire the load event."""

        if self._content_document is not None:
            self._content_document.finish_loading()
        self.dispatch_event("load")


class Document(Node):
    """Root of a live tree; owns observers, listeners and style resolution."""

    def __init__(
        self,
        *,
        url: str = "about:blank",
        host: Optional["Host"] = None,
        ready_state: str = "complete",
        style_resolver: Optional[StyleResolver] = None,
    ) -> None:
        super().__init__()
        self.url = url
        self.host = host
        self.ready_state = ready_state
        self.style_resolver = style_resolver
        self.doctype: Optional[str] = None
        self._observers: List[MutationObserver] = []
        self._listeners: Dict[str, List[Listener]] = {}
        self._delivery_scheduled = False

    def __repr__(self) -> str:
        return f"Document({self.url!r})"

    @property
    def document_element(self) -> Optional[Element]:
        for child in self.children:
            if isinstance(child, Element):
                return child
        return None

    @property
    def body(self) -> Optional[Element]:
        root = self.document_element
        if root is None:
            return None
        if root.tag == "body":
            return root
        for child in root.children:
            if isinstance(child, Element) and child.tag == "body":
                return child
        return None

    def create_element(self, tag: str, attributes: Optional[Dict[str, str]] = None) -> Element:
        element = Element(tag, attributes)
        element.owner_document = self
        return element

    def create_text_node(self, data: str) -> Text:
        node = Text(data)
        node.owner_document = self
        return node

    def query_all(self, predicate: Callable[[Element], bool]) -> List[Element]:
        return [element for element in self.iter_elements() if predicate(element)]

    def computed_style(
        self,
        element: Element,
        parent_style: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        """Resolve display, visibility and opacity for an element.

        Inherited properties are taken from ``parent_style`` when the caller
        already resolved the parent, otherwise from the ancestor chain.
        """

        if self.style_resolver is not None:
            return self.style_resolver(element)

        style = {
            "display": element.style.get("display", "block") or "block",
            "opacity": element.style.get("opacity", "1") or "1",
        }
        if element.has_attribute("hidden"):
            style["display"] = "none"
        for name, default in INHERITED_STYLE_DEFAULTS.items():
            value = element.style.get(name)
            if (value is None or value == "inherit") and parent_style is not None:
                value = parent_style.get(name)
            elif value is None or value == "inherit":
                for ancestor in element.ancestors():
                    value = ancestor.style.get(name)
                    if value is not None and value != "inherit":
                        break
            style[name] = value if value not in (None, "inherit") else default
        return style

    def add_event_listener(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def remove_event_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def dispatch_event(self, event: str) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener()

    def finish_loading(self) -> None:
        if self.ready_state == "loading":
            self.ready_state = "interactive"
            self.dispatch_event("DOMContentLoaded")
        self.ready_state = "complete"
        self.dispatch_event("load")

    def deliver_mutations(self) -> None:
        """Hand every observer its pending records as a single batch."""

        self._delivery_scheduled = False
        for observer in list(self._observers):
            records = observer.take_records()
            if records:
                observer.callback(records)

    def _register_observer(self, observer: MutationObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def _unregister_observer(self, observer: MutationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _queue_record(self, record: MutationRecord) -> None:
        queued = False
        for observer in self._observers:
            queued = observer._enqueue(record) or queued
        if queued and self.host is not None and not self._delivery_scheduled:
            self._delivery_scheduled = True
            self.host.call_soon(self.deliver_mutations)
