"""kdbxdom - Path-based access to KeePass KDBX XML documents.

This library provides the layer between a decrypted KDBX XML payload and a
database object model:
- Reading and writing values at XPath-like paths, creating missing
  elements on demand
- Storing binary attachments gzip-compressed and base64-encoded in the
  Binaries container, addressed by integer ID
- Converting 128-bit identifiers between base64 and hex text

Example:
    from xml.etree.ElementTree import SubElement

    from kdbxdom import AttachmentStore, create_document, ensure_all, find, write_text
    from kdbxdom.elements import ENTRY_DEFAULTS, binary_value_path, property_value_path

    root = create_document("Vault")
    entry = SubElement(find("Root/Group", root), "Entry")
    ensure_all(entry, ENTRY_DEFAULTS)

    write_text(property_value_path("Title"), entry, "Gmail")
    AttachmentStore(root).put(binary_value_path("key.pem"), entry, data)
"""

__version__ = "0.1.0"

from .accessor import (
    KDBX4_TIME_FORMAT,
    ConstantValue,
    CurrentTime,
    RandomIdentifier,
    ValueProducer,
    count,
    ensure_all,
    ensure_text,
    find,
    find_all,
    format_time,
    get_or_create,
    read_text,
    touch,
    write_text,
)
from .attachments import AttachmentSettings, AttachmentStore
from .document import create_document, parse_document, serialize_document
from .exceptions import (
    CodecError,
    IntegrityError,
    InvalidXmlError,
    KdbxDomError,
    QueryError,
)
from .identifiers import (
    decode_base64,
    decode_hex,
    encode_base64,
    encode_hex,
    hex_from_base64,
    new_random_id,
    random_base64_id,
)
from .paths import NodePath, Segment

__all__ = [
    # Path access
    "NodePath",
    "Segment",
    "find",
    "find_all",
    "count",
    "get_or_create",
    "read_text",
    "ensure_text",
    "write_text",
    "touch",
    "ensure_all",
    "format_time",
    "KDBX4_TIME_FORMAT",
    "ValueProducer",
    "ConstantValue",
    "CurrentTime",
    "RandomIdentifier",
    # Attachments
    "AttachmentSettings",
    "AttachmentStore",
    # Documents
    "create_document",
    "parse_document",
    "serialize_document",
    # Identifiers
    "new_random_id",
    "random_base64_id",
    "encode_base64",
    "decode_base64",
    "encode_hex",
    "decode_hex",
    "hex_from_base64",
    # Exceptions
    "KdbxDomError",
    "QueryError",
    "IntegrityError",
    "CodecError",
    "InvalidXmlError",
]
