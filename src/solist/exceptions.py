from typing import Optional

from solist.commons import DOCUMENT_DESCRIPTION


class SolistException(Exception):
    """Base exception for solist"""


class LoaderError(SolistException):
    """Indicates a binary object could not be opened or read."""


class ParseError(SolistException):
    """Base class for library list parsing errors.

    Any of these aborts the parse of the whole document: the descriptors that
    were built up to that point are discarded.
    """

    #: Line of the document at which the error was detected (if known)
    line: Optional[int]

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def __str__(self) -> str:
        if self.line is None:
            return f"while parsing {DOCUMENT_DESCRIPTION}: {self.message}"
        return (
            f"while parsing {DOCUMENT_DESCRIPTION} (at line {self.line}): "
            f"{self.message}"
        )


class XmlSupportUnavailable(ParseError):
    """The XML parser extension is not available in this interpreter."""


class XmlSyntaxError(ParseError):
    """The document is not well-formed XML."""


class UnsupportedVersion(ParseError):
    """The ``version`` attribute of ``<library-list>`` is not "1.0"."""


class MixedBaseKinds(ParseError):
    """A library specifies both segment and section bases."""


class NoBases(ParseError):
    """A library specifies neither segment nor section bases."""


class MalformedAddress(ParseError):
    """An ``address`` attribute is not an unsigned pointer-sized integer."""


class UnexpectedElement(ParseError):
    """An element that is not part of the library list grammar."""


class UnexpectedAttribute(ParseError):
    """An attribute that is not allowed on its element."""


class MissingAttribute(ParseError):
    """A required attribute is absent (or empty)."""


class UnexpectedText(ParseError):
    """Character data where the grammar allows only elements."""
