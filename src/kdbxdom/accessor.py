"""Read and write values at paths inside a KDBX XML tree.

These functions are the primitive the database object model is built on:
every entry property, timestamp and attachment reference lives at a path
relative to some Group or Entry element. Lookups never create anything;
the ``get_or_create`` family fills in whatever part of a path is missing.

Example:
    entry = find("Group/Entry", root_element)
    ensure_text("Times/Expires", entry, "False")
    write_text("String[Key='Title']/Value", entry, "Gmail")
    touch("Times/LastModificationTime", entry)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable
from xml.etree.ElementTree import Element

from .exceptions import QueryError
from .identifiers import random_base64_id
from .paths import FilterKind, NodePath, as_path, evaluate, text_content

logger = logging.getLogger(__name__)

# KDBX4 time format (ISO 8601, compatible with KeePassXC)
KDBX4_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

PathLike = NodePath | str


@runtime_checkable
class ValueProducer(Protocol):
    """Supplies the initial text for an element that does not exist yet."""

    def value(self) -> str: ...


@dataclass(frozen=True, slots=True)
class ConstantValue:
    """Always produces the same text."""

    text: str

    def value(self) -> str:
        return self.text


class CurrentTime:
    """Produces the current UTC time in KDBX format."""

    def value(self) -> str:
        return format_time()

    def __repr__(self) -> str:
        return "CurrentTime()"


class RandomIdentifier:
    """Produces a fresh base64 identifier, as used for UUID elements."""

    def value(self) -> str:
        return random_base64_id()

    def __repr__(self) -> str:
        return "RandomIdentifier()"


def format_time(dt: datetime | None = None) -> str:
    """Render a timestamp as KDBX text (e.g. 2025-01-15T10:30:45Z).

    Naive datetimes are taken to be UTC already; aware ones are converted.
    """
    if dt is None:
        dt = datetime.now(UTC)
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt.strftime(KDBX4_TIME_FORMAT)


def find(path: PathLike, context: Element) -> Element | None:
    """Return the first node matching ``path``, or None."""
    return next(evaluate(path, context), None)


def find_all(path: PathLike, context: Element) -> list[Element]:
    """Return every node matching ``path`` in document order."""
    return list(evaluate(path, context))


def count(path: PathLike, context: Element) -> int:
    return sum(1 for _ in evaluate(path, context))


def get_or_create(path: PathLike, context: Element) -> Element:
    """Return the node at ``path``, creating any missing segments.

    Each segment reuses the first existing match under the current node and
    is otherwise appended as a new child. Filtered segments are created so
    that they satisfy their filter, so a following ``find`` with the same
    path returns the node this call returned.

    Raises:
        QueryError: If the path is malformed, or contains descendant steps
            and nothing matches it
    """
    path = as_path(path)
    existing = find(path, context)
    if existing is not None:
        return existing
    if not path.creatable:
        raise QueryError("Cannot create a path with descendant steps", str(path))

    current = context
    for segment in path.segments:
        child = next((c for c in current if segment.matches(c)), None)
        if child is None:
            child = segment.create(current)
            logger.debug("Created <%s> under <%s>", segment.name, current.tag)
        current = child
    return current


def set_text(element: Element, value: str) -> None:
    """Replace the content of an element with text, keeping its attributes."""
    del element[:]
    element.text = value


def read_text(path: PathLike, context: Element) -> str | None:
    """Return the text at ``path``, or None if there is no such node."""
    element = find(path, context)
    return None if element is None else text_content(element)


def _check_writable(path: NodePath, value: str) -> None:
    """Reject text writes that would undo the filter of the last segment.

    Writing text replaces all children, so a leaf such as String[Key='K']
    would lose its Key child, and Tags[.='a'] would stop matching once
    its text changed. Either way the same path would no longer find it.

    Raises:
        QueryError: If the last segment is keyed by a child, or filters on
            its own text with a value other than ``value``
    """
    last = path.segments[-1]
    if last.filter_kind is FilterKind.CHILD_TEXT:
        raise QueryError("Cannot write text to a segment keyed by a child", last.name)
    if last.filter_kind is FilterKind.TEXT and last.filter_value != value:
        raise QueryError("Text would not match the segment's own text filter", last.name)


def _ensure(path: PathLike, context: Element, produce: Callable[[], str]) -> str:
    path = as_path(path)
    element = find(path, context)
    if element is None:
        value = produce()
        _check_writable(path, value)
        element = get_or_create(path, context)
        set_text(element, value)
    return text_content(element)


def ensure_text(path: PathLike, context: Element, default_value: str) -> str:
    """Initialize the text at ``path`` unless the node already exists.

    Unlike write_text, an existing node is left untouched and its current
    text is returned.
    """
    return _ensure(path, context, lambda: default_value)


def write_text(path: PathLike, context: Element, value: str) -> Element:
    """Set the text at ``path``, creating the node if needed.

    Raises:
        QueryError: If the path is malformed, or its last segment has a
            filter the new text would break
    """
    path = as_path(path)
    _check_writable(path, value)
    element = get_or_create(path, context)
    set_text(element, value)
    return element


def touch(path: PathLike, context: Element, now: datetime | None = None) -> Element:
    """Write the current (or given) time at ``path``."""
    return write_text(path, context, format_time(now))


def ensure_all(
    context: Element, values: Mapping[PathLike, ValueProducer | str]
) -> None:
    """Initialize every missing path in ``values``.

    Producers are only consulted for paths that do not exist yet, so
    existing timestamps and identifiers are never regenerated.
    """
    for path, producer in values.items():
        if isinstance(producer, str):
            producer = ConstantValue(producer)
        _ensure(path, context, producer.value)
