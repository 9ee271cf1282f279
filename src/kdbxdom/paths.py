"""Path expressions over KDBX XML trees.

A small subset of XPath sufficient for addressing KeePass documents:

    Times/LastModificationTime          child steps
    String[Key='Title']/Value           child element text filter
    String[Key/text()='Title']          same filter, long form
    Binary[@ID='3']                     attribute filter
    Tag[.='x']  or  Tag[text()='x']     own text filter
    //Binaries                          descendant step

Each step is a Segment: a tag name, an axis (child or descendant) and an
optional equality filter. Segments are descriptors rather than strings so
that a missing step can be created in a form that satisfies its own
filter, which is what makes create-then-find on the same path reliable.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from xml.etree.ElementTree import Element, SubElement

from .exceptions import QueryError

_NAME = r"[A-Za-z_][\w.\-]*"
_NAME_RE = re.compile(rf"^{_NAME}$")
_SEGMENT_RE = re.compile(rf"^(?P<name>{_NAME})(?:\[(?P<predicate>.*)\])?$", re.DOTALL)
_PREDICATE_RE = re.compile(
    rf"""^\s*
    (?:
        @(?P<attr>{_NAME})
      | (?P<child>{_NAME})(?:/text\(\))?
      | (?P<self>\.|text\(\))
    )
    \s*=\s*
    (?:'(?P<single>[^']*)'|"(?P<double>[^"]*)")
    \s*$""",
    re.VERBOSE | re.DOTALL,
)


class Axis(Enum):
    """Direction a segment searches from its context node."""

    CHILD = "child"
    DESCENDANT = "descendant"


class FilterKind(Enum):
    """Kind of equality test a segment applies to candidate nodes."""

    CHILD_TEXT = "child_text"
    ATTRIBUTE = "attribute"
    TEXT = "text"


def text_content(element: Element) -> str:
    """Return the text of an element and all its descendants."""
    return "".join(element.itertext())


def quote(value: str) -> str:
    """Quote a literal for use in a path filter.

    Raises:
        QueryError: If the value contains both quote characters, which the
            path syntax has no way to express
    """
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    raise QueryError("Value contains both quote characters", value)


@dataclass(frozen=True, slots=True)
class Segment:
    """One step of a path.

    Attributes:
        name: Tag name the step matches
        axis: Whether to look at children or all descendants
        filter_kind: Kind of equality filter, or None for a plain name match
        filter_field: Child tag (CHILD_TEXT) or attribute name (ATTRIBUTE)
        filter_value: Literal the filtered text or attribute must equal
    """

    name: str
    axis: Axis = Axis.CHILD
    filter_kind: FilterKind | None = None
    filter_field: str | None = None
    filter_value: str | None = None

    def __post_init__(self) -> None:
        if not _NAME_RE.match(self.name):
            raise QueryError("Invalid element name", self.name)
        if self.filter_kind is None:
            if self.filter_field is not None or self.filter_value is not None:
                raise QueryError("Filter field given without a filter kind", self.name)
            return
        if self.filter_value is None:
            raise QueryError("Filter requires a value", self.name)
        if self.filter_kind is FilterKind.TEXT:
            if self.filter_field is not None:
                raise QueryError("Text filter takes no field", self.name)
        elif self.filter_field is None or not _NAME_RE.match(self.filter_field):
            raise QueryError("Invalid filter field", str(self.filter_field))

    @classmethod
    def child(cls, name: str) -> Segment:
        return cls(name)

    @classmethod
    def keyed(cls, name: str, field: str, value: str) -> Segment:
        """Segment matching ``name`` elements whose ``field`` child has text ``value``."""
        return cls(name, filter_kind=FilterKind.CHILD_TEXT, filter_field=field, filter_value=value)

    @classmethod
    def attribute(cls, name: str, attribute: str, value: str) -> Segment:
        """Segment matching ``name`` elements whose ``attribute`` equals ``value``."""
        return cls(name, filter_kind=FilterKind.ATTRIBUTE, filter_field=attribute, filter_value=value)

    @classmethod
    def text(cls, name: str, value: str) -> Segment:
        return cls(name, filter_kind=FilterKind.TEXT, filter_value=value)

    @classmethod
    def parse(cls, text: str, axis: Axis = Axis.CHILD) -> Segment:
        """Parse a single step such as ``String[Key='Title']``.

        Raises:
            QueryError: If the step is not valid path syntax
        """
        match = _SEGMENT_RE.match(text)
        if match is None:
            raise QueryError("Invalid path segment", text)
        name = match.group("name")
        predicate = match.group("predicate")
        if predicate is None:
            return cls(name, axis=axis)

        pred = _PREDICATE_RE.match(predicate)
        if pred is None:
            raise QueryError("Unsupported filter", text)
        value = pred.group("single")
        if value is None:
            value = pred.group("double")
        if pred.group("attr"):
            return cls(name, axis, FilterKind.ATTRIBUTE, pred.group("attr"), value)
        if pred.group("child"):
            return cls(name, axis, FilterKind.CHILD_TEXT, pred.group("child"), value)
        return cls(name, axis, FilterKind.TEXT, None, value)

    @property
    def creatable(self) -> bool:
        return self.axis is Axis.CHILD

    def matches(self, element: Element) -> bool:
        """Check whether an element satisfies this segment's name and filter."""
        if element.tag != self.name:
            return False
        if self.filter_kind is None:
            return True
        if self.filter_kind is FilterKind.ATTRIBUTE:
            return element.get(self.filter_field) == self.filter_value
        if self.filter_kind is FilterKind.TEXT:
            return text_content(element) == self.filter_value
        return any(
            child.tag == self.filter_field and text_content(child) == self.filter_value
            for child in element
        )

    def create(self, parent: Element) -> Element:
        """Append a new element to ``parent`` that this segment will match.

        For a filtered segment the filter is satisfied as well: the keyed
        child is created and populated, or the attribute or text is set.

        Raises:
            QueryError: If the segment uses the descendant axis, which does
                not say where the new element belongs
        """
        if not self.creatable:
            raise QueryError("Cannot create a descendant segment", f"//{self.name}")
        element = SubElement(parent, self.name)
        if self.filter_kind is FilterKind.CHILD_TEXT:
            SubElement(element, self.filter_field).text = self.filter_value
        elif self.filter_kind is FilterKind.ATTRIBUTE:
            element.set(self.filter_field, self.filter_value)
        elif self.filter_kind is FilterKind.TEXT:
            element.text = self.filter_value
        return element

    def __str__(self) -> str:
        """Render as path text.

        Raises:
            QueryError: If the filter value contains both quote characters
        """
        if self.filter_kind is None:
            return self.name
        literal = quote(self.filter_value)
        if self.filter_kind is FilterKind.ATTRIBUTE:
            return f"{self.name}[@{self.filter_field}={literal}]"
        if self.filter_kind is FilterKind.TEXT:
            return f"{self.name}[.={literal}]"
        return f"{self.name}[{self.filter_field}={literal}]"


def _split(text: str) -> list[tuple[Axis, str]]:
    """Split path text into (axis, step) pairs.

    Slashes and quotes inside a filter do not separate steps.
    """
    steps: list[tuple[Axis, str]] = []
    current: list[str] = []
    axis = Axis.CHILD
    depth = 0
    in_quote: str | None = None
    i = 0

    if text.startswith("//"):
        axis = Axis.DESCENDANT
        i = 2
    elif text.startswith("/"):
        raise QueryError("Absolute paths are not supported", text)

    while i < len(text):
        ch = text[i]
        if in_quote is not None:
            if ch == in_quote:
                in_quote = None
        elif depth and ch in "'\"":
            in_quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth < 0:
                raise QueryError("Unbalanced brackets in path", text)
        elif ch == "/" and depth == 0:
            steps.append((axis, "".join(current)))
            current = []
            if text.startswith("//", i):
                axis = Axis.DESCENDANT
                i += 2
            else:
                axis = Axis.CHILD
                i += 1
            continue
        current.append(ch)
        i += 1

    if in_quote is not None or depth:
        raise QueryError("Unterminated filter in path", text)
    steps.append((axis, "".join(current)))
    return steps


@dataclass(frozen=True, slots=True)
class NodePath:
    """An ordered sequence of segments evaluated relative to a context node."""

    segments: tuple[Segment, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", tuple(self.segments))
        if not self.segments:
            raise QueryError("Empty path")

    @classmethod
    def parse(cls, text: str) -> NodePath:
        """Parse path text.

        Raises:
            QueryError: If the text is not valid path syntax
        """
        text = text.strip()
        if not text:
            raise QueryError("Empty path", text)
        return cls(tuple(Segment.parse(step, axis) for axis, step in _split(text)))

    @property
    def creatable(self) -> bool:
        """True when every segment can be created by get_or_create."""
        return all(segment.creatable for segment in self.segments)

    def __truediv__(self, other: NodePath | Segment | str) -> NodePath:
        if isinstance(other, Segment):
            return NodePath((*self.segments, other))
        return NodePath((*self.segments, *as_path(other).segments))

    def __str__(self) -> str:
        return "".join(
            ("//" if segment.axis is Axis.DESCENDANT else ("/" if i else "")) + str(segment)
            for i, segment in enumerate(self.segments)
        )


def as_path(path: NodePath | str) -> NodePath:
    if isinstance(path, NodePath):
        return path
    if isinstance(path, str):
        return NodePath.parse(path)
    raise TypeError(f"Expected str or NodePath, got {type(path).__name__}")


def _candidates(segment: Segment, node: Element) -> Iterator[Element]:
    pool: Iterator[Element]
    if segment.axis is Axis.CHILD:
        pool = iter(node)
    else:
        pool = node.iter()
        next(pool)  # iter() starts with the node itself
    return (element for element in pool if segment.matches(element))


def _walk(segments: tuple[Segment, ...], node: Element) -> Iterator[Element]:
    head, rest = segments[0], segments[1:]
    for element in _candidates(head, node):
        if rest:
            yield from _walk(rest, element)
        else:
            yield element


def evaluate(path: NodePath | str, context: Element) -> Iterator[Element]:
    """Iterate over every node matching ``path`` under ``context`` in document order.

    Child-only paths are evaluated lazily. Paths with descendant steps can
    reach the same node through nested matches, so they are collected,
    de-duplicated and sorted into document order first.

    Raises:
        QueryError: If the path text is malformed
    """
    path = as_path(path)
    if path.creatable:
        return _walk(path.segments, context)
    return iter(_collect(path, context))


def _collect(path: NodePath, context: Element) -> list[Element]:
    current = [context]
    for segment in path.segments:
        seen: set[int] = set()
        matched: list[Element] = []
        for node in current:
            for element in _candidates(segment, node):
                if id(element) not in seen:
                    seen.add(id(element))
                    matched.append(element)
        current = matched

    position = {id(element): i for i, element in enumerate(context.iter())}
    current.sort(key=lambda element: position[id(element)])
    return current
