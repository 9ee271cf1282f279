"""Parsing, serialization and creation of KDBX XML documents.

The accessor functions work on any ElementTree element. This module covers
the two ends around them: turning decrypted XML payload bytes into a tree
(through defusedxml, since the payload comes from a file of unknown origin)
and turning the tree back into bytes for re-encryption.
"""

from __future__ import annotations

import logging
from typing import cast
from xml.etree.ElementTree import Element, ParseError, tostring

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET

from .accessor import (
    ConstantValue,
    CurrentTime,
    ValueProducer,
    ensure_all,
    get_or_create,
    write_text,
)
from .elements import GROUP_DEFAULTS, NAME_ELEMENT_NAME
from .exceptions import InvalidXmlError
from .identifiers import encode_base64

logger = logging.getLogger(__name__)

ROOT_ELEMENT_NAME = "KeePassFile"
META_ELEMENT_NAME = "Meta"
BINARIES_PATH = "Meta/Binaries"
ROOT_GROUP_PATH = "Root/Group"

# All-zero UUID used by KeePass for "no group"
EMPTY_UUID = encode_base64(b"\x00" * 16)


def parse_document(data: bytes | str) -> Element:
    """Parse an XML payload into a mutable element tree.

    Raises:
        InvalidXmlError: If the payload is malformed or uses forbidden
            constructs such as entity declarations
    """
    try:
        root = DefusedET.fromstring(data)
    except ParseError as e:
        raise InvalidXmlError(f"Malformed XML: {e}") from e
    except DefusedXmlException as e:
        raise InvalidXmlError(f"Forbidden XML construct: {e}") from e
    logger.debug("Parsed document with root <%s>", root.tag)
    return cast(Element, root)


def serialize_document(root: Element) -> bytes:
    """Serialize a tree to UTF-8 XML bytes with a declaration."""
    # tostring returns bytes when encoding is specified
    return cast(bytes, tostring(root, encoding="utf-8", xml_declaration=True))


def _meta_defaults(database_name: str, generator: str) -> dict[str, ValueProducer | str]:
    return {
        "Generator": generator,
        "DatabaseName": database_name,
        "DatabaseNameChanged": CurrentTime(),
        "DatabaseDescription": "",
        "DefaultUserName": "",
        "MaintenanceHistoryDays": "365",
        "MasterKeyChangeRec": "-1",
        "MasterKeyChangeForce": "-1",
        "MemoryProtection/ProtectTitle": "False",
        "MemoryProtection/ProtectUserName": "False",
        "MemoryProtection/ProtectPassword": "True",
        "MemoryProtection/ProtectURL": "False",
        "MemoryProtection/ProtectNotes": "False",
        "RecycleBinEnabled": "True",
        "RecycleBinUUID": ConstantValue(EMPTY_UUID),
        "HistoryMaxItems": "10",
        "HistoryMaxSize": str(6 * 1024 * 1024),  # 6 MiB
    }


def create_document(database_name: str = "Database", generator: str = "kdbxdom") -> Element:
    """Create a minimal KeePass document.

    The result has a Meta section (including an empty Binaries container)
    and a root Group with its mandatory elements filled in.
    """
    root = Element(ROOT_ELEMENT_NAME)
    meta = get_or_create(META_ELEMENT_NAME, root)
    ensure_all(meta, _meta_defaults(database_name, generator))
    get_or_create(BINARIES_PATH, root)

    group = get_or_create(ROOT_GROUP_PATH, root)
    ensure_all(group, GROUP_DEFAULTS)
    write_text(NAME_ELEMENT_NAME, group, database_name)
    return root
