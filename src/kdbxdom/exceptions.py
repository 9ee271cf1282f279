"""Custom exception hierarchy for kdbxdom.

All exceptions inherit from KdbxDomError, so callers can catch every
library-specific failure with a single except clause.

Exception Hierarchy:
    KdbxDomError (base)
    ├── QueryError
    ├── IntegrityError
    ├── CodecError
    └── InvalidXmlError

A lookup that matches nothing is not an error: accessors return None
(or an empty list) for that case.
"""

from __future__ import annotations


class KdbxDomError(Exception):
    """Base exception for all kdbxdom errors."""


class QueryError(KdbxDomError):
    """Malformed path expression.

    Raised when a path cannot be parsed, or when a path that can only be
    searched (such as a descendant segment) is asked to create nodes.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path is not None:
            message = f"{message}: {path!r}"
        super().__init__(message)


class IntegrityError(KdbxDomError):
    """The document is corrupt or was written by a foreign tool.

    Raised when a reference points at a binary that does not exist, when
    the binary container is missing, or when an ID/Ref attribute is not a
    non-negative decimal integer.
    """


class CodecError(KdbxDomError):
    """Encoding or compression failure.

    Raised when base64 or hex text is malformed, when an identifier has
    the wrong length, or when gzip data cannot be decompressed.
    """


class InvalidXmlError(KdbxDomError):
    """Invalid or malformed XML payload.

    The XML content could not be parsed, or contains constructs that are
    rejected for safety (entity expansion, external references).
    """

    def __init__(self, message: str = "Invalid KDBX XML structure") -> None:
        super().__init__(message)
