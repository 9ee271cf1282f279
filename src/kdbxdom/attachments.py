"""Binary attachment storage inside the XML document.

KDBX 3.1 keeps attachment payloads in a single container element, usually
``Meta/Binaries``, as ``Binary`` children carrying an integer ``ID``:

    <Binaries>
        <Binary ID="0" Compressed="True">H4sIAAAAAAAA/...</Binary>
    </Binaries>

Entries point at a payload through a ``Ref`` attribute elsewhere in the
tree, typically ``Entry/Binary[Key='name']/Value``. Payloads are gzip
compressed (so third-party KeePass clients can read them) and then base64
encoded as element text.

Records are write-once. Storing new content for an attachment appends a new
record and repoints the reference; the previous record is left in place,
orphaned, rather than overwritten.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import logging
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from xml.etree.ElementTree import Element, SubElement

from .accessor import PathLike, find, get_or_create
from .exceptions import CodecError, IntegrityError
from .paths import as_path, text_content

logger = logging.getLogger(__name__)

# Maximum size for a single binary attachment (512 MiB)
# Prevents memory exhaustion from malicious KDBX files
MAX_BINARY_SIZE = 512 * 1024 * 1024

DEFAULT_COMPRESSLEVEL = 6
DEFAULT_CONTAINER_PATH = "//Binaries"

BINARY_ELEMENT_NAME = "Binary"
ID_ATTRIBUTE = "ID"
COMPRESSED_ATTRIBUTE = "Compressed"
REF_ATTRIBUTE = "Ref"

_GZIP_WBITS = 16 + zlib.MAX_WBITS


@dataclass(slots=True)
class AttachmentSettings:
    """Settings for an AttachmentStore.

    Attributes:
        container_path: Path to the Binaries container, relative to the
            document root element
        compresslevel: gzip compression level (0-9) for new records
        max_binary_size: Largest decompressed payload accepted on read
    """

    container_path: str = DEFAULT_CONTAINER_PATH
    compresslevel: int = DEFAULT_COMPRESSLEVEL
    max_binary_size: int = MAX_BINARY_SIZE

    def __post_init__(self) -> None:
        if not 0 <= self.compresslevel <= 9:
            raise ValueError(f"compresslevel must be 0-9, got {self.compresslevel}")
        if self.max_binary_size < 0:
            raise ValueError("max_binary_size must not be negative")


def compress(data: bytes, compresslevel: int = DEFAULT_COMPRESSLEVEL) -> bytes:
    """gzip-compress a payload with a zeroed timestamp."""
    try:
        return gzip.compress(data, compresslevel=compresslevel, mtime=0)
    except zlib.error as e:
        raise CodecError("Failed to compress binary content") from e


def decompress(data: bytes, max_size: int = MAX_BINARY_SIZE) -> bytes:
    """Decompress gzip data, refusing output larger than ``max_size``.

    Concatenated gzip members are decompressed in sequence. The CRC and
    length trailer of each member is verified by zlib. Zero bytes after the
    last member are treated as padding and ignored, as the gzip module does;
    any other trailing data is an error.

    Raises:
        CodecError: If the data is not valid gzip, is truncated, or expands
            beyond ``max_size``
    """
    chunks: list[bytes] = []
    total = 0
    remaining = data
    while True:
        decompressor = zlib.decompressobj(_GZIP_WBITS)
        try:
            chunk = decompressor.decompress(remaining, max_size + 1 - total)
        except zlib.error as e:
            raise CodecError("Invalid gzip data in binary content") from e
        total += len(chunk)
        if total > max_size:
            raise CodecError(f"Binary content exceeds maximum size of {max_size} bytes")
        if not decompressor.eof:
            raise CodecError("Truncated gzip data in binary content")
        chunks.append(chunk)
        remaining = decompressor.unused_data
        if not remaining.strip(b"\x00"):
            return b"".join(chunks)


def _parse_id(value: str | None, attribute: str) -> int:
    if value is None:
        raise IntegrityError(f"Missing {attribute} attribute")
    if not (value.isascii() and value.isdigit()):
        raise IntegrityError(f"Non-numeric {attribute} attribute: {value!r}")
    return int(value)


class AttachmentStore:
    """Content store for binary attachments kept in the XML document.

    The store only holds a reference to the document root; all state lives
    in the tree. The one exception is the last ID allocated, remembered so
    that IDs are not handed out twice even if a record is removed from the
    tree behind the store's back.

    Example:
        store = AttachmentStore(document_root)
        store.put(binary_value_path("photo.jpg"), entry_element, data)
        assert store.get(binary_value_path("photo.jpg"), entry_element) == data
    """

    def __init__(
        self,
        document_root: Element,
        settings: AttachmentSettings | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            document_root: Root element of the document (KeePassFile)
            settings: Store settings (defaults if not given)

        Raises:
            QueryError: If the configured container path is malformed
        """
        self._root = document_root
        self._settings = settings or AttachmentSettings()
        self._container_path = as_path(self._settings.container_path)
        self._last_allocated: int | None = None

    @property
    def settings(self) -> AttachmentSettings:
        return self._settings

    @property
    def container(self) -> Element:
        """The Binaries element holding all records.

        Raises:
            IntegrityError: If the document has no container
        """
        container = find(self._container_path, self._root)
        if container is None:
            raise IntegrityError(f"Binaries not found at {self._container_path}")
        return container

    def _records(self) -> Iterator[tuple[int, Element]]:
        for element in self.container:
            if element.tag == BINARY_ELEMENT_NAME:
                yield _parse_id(element.get(ID_ATTRIBUTE), ID_ATTRIBUTE), element

    def ids(self) -> list[int]:
        """IDs of all records, in document order."""
        return [blob_id for blob_id, _ in self._records()]

    def __len__(self) -> int:
        return sum(1 for _ in self._records())

    def __contains__(self, blob_id: object) -> bool:
        return any(existing == blob_id for existing, _ in self._records())

    def next_id(self) -> int:
        """The ID the next put will allocate.

        IDs are compared as integers, so records 9 and 10 give 11.
        """
        highest = max(self.ids(), default=-1)
        if self._last_allocated is not None:
            highest = max(highest, self._last_allocated)
        return highest + 1

    def record(self, blob_id: int) -> Element:
        """Find the record with the given ID.

        Raises:
            IntegrityError: If no such record exists
        """
        for existing, element in self._records():
            if existing == blob_id:
                return element
        raise IntegrityError(f"Could not find binary content with ID {blob_id}")

    def read_record(self, record: Element) -> bytes:
        """Decode the payload held by a record element."""
        text = "".join(text_content(record).split())
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CodecError("Invalid base64 in binary content") from e
        if record.get(COMPRESSED_ATTRIBUTE, "").lower() == "true":
            data = decompress(data, self._settings.max_binary_size)
        return data

    def get(self, reference_path: PathLike, context: Element) -> bytes | None:
        """Return the payload referenced by the node at ``reference_path``.

        Args:
            reference_path: Path of the node carrying the Ref attribute
            context: Element the path is relative to

        Returns:
            Payload bytes, or None if there is no node at the path

        Raises:
            IntegrityError: If the Ref is missing or malformed, or names a
                record that does not exist
            CodecError: If the stored content cannot be decoded
        """
        reference = find(reference_path, context)
        if reference is None:
            return None
        blob_id = _parse_id(reference.get(REF_ATTRIBUTE), REF_ATTRIBUTE)
        data = self.read_record(self.record(blob_id))
        logger.debug("Read binary %d (%d bytes)", blob_id, len(data))
        return data

    def put(self, reference_path: PathLike, context: Element, data: bytes) -> Element:
        """Store a payload and point the node at ``reference_path`` at it.

        A new record is always appended; existing records are never changed.
        Everything that can fail runs before the tree is modified, so a
        failed put leaves neither a partial record nor a dangling Ref.

        Args:
            reference_path: Path of the node that should carry the Ref
            context: Element the path is relative to
            data: Payload bytes

        Returns:
            The reference node

        Raises:
            QueryError: If the path is malformed or cannot be created
            IntegrityError: If the container is missing or holds a
                malformed ID
            TypeError: If ``data`` is not bytes, bytearray or memoryview
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Expected bytes-like data, got {type(data).__name__}")
        path = as_path(reference_path)
        container = self.container
        payload = bytes(data)
        encoded = base64.b64encode(
            compress(payload, self._settings.compresslevel)
        ).decode("ascii")
        blob_id = self.next_id()

        reference = get_or_create(path, context)

        record = SubElement(container, BINARY_ELEMENT_NAME)
        record.set(ID_ATTRIBUTE, str(blob_id))
        record.set(COMPRESSED_ATTRIBUTE, "True")
        record.text = encoded
        reference.set(REF_ATTRIBUTE, str(blob_id))
        self._last_allocated = blob_id

        logger.debug(
            "Stored binary %d (%d bytes, %d encoded)", blob_id, len(payload), len(encoded)
        )
        return reference
