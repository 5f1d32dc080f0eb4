"""Parser for the ``<library-list>`` document a target reports.

The document looks like this::

    <library-list version="1.0">
      <library name="/lib/libc.so.6">
        <segment address="0x10000000"/>
      </library>
      <library name="/lib/libm.so.6">
        <section address="0x20000000"/>
        <section address="0x20004000"/>
      </library>
    </library-list>

Each ``<library>`` holds either ``<segment>`` or ``<section>`` children (never
both, and at least one). The grammar is described by a small table of
``ElementSpec`` objects; the expat callbacks walk the document once, top-down,
and validate every element and attribute against that table.

Examples:
    >>> libraries = parse_library_list(document)
    >>> libraries[0].name
    '/lib/libc.so.6'
    >>> libraries[0].bases
    Segments(addresses=[268435456])
"""

import re
from typing import Callable, Dict, List, Optional, Tuple, Type, Union

import attr
from loguru import logger

from solist.commons import SUPPORTED_VERSION
from solist.exceptions import (
    MalformedAddress,
    MissingAttribute,
    MixedBaseKinds,
    NoBases,
    ParseError,
    UnexpectedAttribute,
    UnexpectedElement,
    UnexpectedText,
    UnsupportedVersion,
    XmlSupportUnavailable,
    XmlSyntaxError,
)
from solist.library import LibraryDescriptor, Sections, Segments
from solist.machine import DEFAULT_MACHINE, Machine

try:
    from xml.parsers import expat
except ImportError:  # pyexpat is an optional extension module
    expat = None

#: Set once the "no XML support" error was reported, so that it's reported
#: only once per process
_have_warned = False

# strtoul(..., 0) notation: hex with a "0x" prefix, octal with a leading "0",
# or plain decimal
ADDRESS_RE = re.compile(
    r"\s*(?:0[xX](?P<hex>[0-9a-fA-F]+)|(?P<oct>0[0-7]*)|(?P<dec>[1-9][0-9]*))\Z"
)


def parse_address(text: str, machine: Machine = DEFAULT_MACHINE) -> int:
    """Convert an address attribute into an integer.

    Args:
        text: The attribute value.
        machine: Determines the largest acceptable address.

    Returns:
        The address.

    Raises:
        ValueError: If the text is not an unsigned integer, or does not fit
            in a pointer of the machine.

    """
    match = ADDRESS_RE.match(text)
    if not match:
        raise ValueError(f"Can't convert {text!r} to an integer")

    if match.group("hex") is not None:
        value = int(match.group("hex"), 16)
    elif match.group("oct") is not None:
        value = int(match.group("oct"), 8)
    else:
        value = int(match.group("dec"), 10)

    if value > machine.address_mask:
        raise ValueError(
            f"Address {text!r} does not fit in {machine.bit_width} bits"
        )
    return value


@attr.s(auto_attribs=True)
class LibraryBuilder:
    """A ``<library>`` element whose children are still being read."""

    name: str
    segments: List[int] = attr.Factory(list)
    sections: List[int] = attr.Factory(list)

    def build(self) -> LibraryDescriptor:
        if self.segments:
            return LibraryDescriptor(self.name, Segments(self.segments))
        return LibraryDescriptor(self.name, Sections(self.sections))


AttributeParser = Callable[["LibraryListParser", str], object]
ElementHandler = Callable[["LibraryListParser", Dict[str, object]], None]


@attr.s(auto_attribs=True, frozen=True)
class AttributeSpec:
    name: str
    required: bool = True
    #: Converts the raw attribute value (``None`` keeps the string)
    parse: Optional[AttributeParser] = None


@attr.s(auto_attribs=True, frozen=True)
class ElementSpec:
    """Describes an element of the grammar: which attributes it may carry,
    which elements may nest in it, and what to do when it opens and closes.
    """

    name: str
    attributes: Tuple[AttributeSpec, ...] = ()
    children: Tuple["ElementSpec", ...] = ()
    start: Optional[ElementHandler] = None
    end: Optional[Callable[["LibraryListParser"], None]] = None

    def child(self, name: str) -> Optional["ElementSpec"]:
        for spec in self.children:
            if spec.name == name:
                return spec
        return None


def address_attribute(parser: "LibraryListParser", value: str) -> int:
    try:
        return parse_address(value, parser.machine)
    except ValueError as error:
        raise MalformedAddress(str(error), parser.line) from error


def start_segment(parser: "LibraryListParser", attributes: Dict[str, object]):
    last = parser.libraries[-1]
    if last.sections:
        parser.error(MixedBaseKinds, "Library list with both segments and sections")
    last.segments.append(attributes["address"])


def start_section(parser: "LibraryListParser", attributes: Dict[str, object]):
    last = parser.libraries[-1]
    if last.segments:
        parser.error(MixedBaseKinds, "Library list with both segments and sections")
    last.sections.append(attributes["address"])


def start_library(parser: "LibraryListParser", attributes: Dict[str, object]):
    parser.libraries.append(LibraryBuilder(name=str(attributes["name"])))


def end_library(parser: "LibraryListParser"):
    last = parser.libraries[-1]
    if not last.segments and not last.sections:
        parser.error(NoBases, "No segment or section bases defined")


def start_library_list(parser: "LibraryListParser", attributes: Dict[str, object]):
    version = attributes.get("version")
    if version is not None and version != SUPPORTED_VERSION:
        parser.error(
            UnsupportedVersion, f'Library list has unsupported version "{version}"'
        )


SEGMENT_ELEMENT = ElementSpec(
    "segment",
    attributes=(AttributeSpec("address", parse=address_attribute),),
    start=start_segment,
)

SECTION_ELEMENT = ElementSpec(
    "section",
    attributes=(AttributeSpec("address", parse=address_attribute),),
    start=start_section,
)

LIBRARY_ELEMENT = ElementSpec(
    "library",
    attributes=(AttributeSpec("name"),),
    children=(SEGMENT_ELEMENT, SECTION_ELEMENT),
    start=start_library,
    end=end_library,
)

#: The root of the grammar
LIBRARY_LIST_ELEMENT = ElementSpec(
    "library-list",
    attributes=(AttributeSpec("version", required=False),),
    children=(LIBRARY_ELEMENT,),
    start=start_library_list,
)


class LibraryListParser:
    """A single-use parser for one library list document.

    Elements are handled in document order; ``<segment>`` and ``<section>``
    elements are appended to the most recently opened ``<library>``.
    """

    #: Pointer width used to validate addresses
    machine: Machine
    #: The libraries built so far
    libraries: List[LibraryBuilder]
    #: The currently open elements, innermost last
    scopes: List[ElementSpec]

    def __init__(self, machine: Machine = DEFAULT_MACHINE):
        self.machine = machine
        self.libraries = []
        self.scopes = []
        self._expat = expat.ParserCreate()
        self._expat.buffer_text = True
        self._expat.StartElementHandler = self.start_element
        self._expat.EndElementHandler = self.end_element
        self._expat.CharacterDataHandler = self.character_data

    @property
    def line(self) -> int:
        return self._expat.CurrentLineNumber

    def error(self, error_class: Type[ParseError], message: str):
        raise error_class(message, self.line)

    def start_element(self, name: str, raw_attributes: Dict[str, str]):
        if self.scopes:
            spec = self.scopes[-1].child(name)
            if spec is None:
                self.error(
                    UnexpectedElement,
                    f"Element <{name}> not expected in <{self.scopes[-1].name}>",
                )
        elif name == LIBRARY_LIST_ELEMENT.name:
            spec = LIBRARY_LIST_ELEMENT
        else:
            self.error(UnexpectedElement, f"Unexpected root element <{name}>")

        logger.debug(f"<{name}> at line {self.line}: {raw_attributes}")
        attributes = self.parse_attributes(spec, raw_attributes)
        self.scopes.append(spec)
        if spec.start:
            spec.start(self, attributes)

    def end_element(self, name: str):
        # pylint: disable=unused-argument
        # Expat guarantees the end tags match the start tags
        spec = self.scopes.pop()
        if spec.end:
            spec.end(self)

    def character_data(self, data: str):
        if data.strip():
            self.error(
                UnexpectedText,
                f"Unexpected text {data.strip()!r} in <{self.scopes[-1].name}>",
            )

    def parse_attributes(
        self, spec: ElementSpec, raw_attributes: Dict[str, str]
    ) -> Dict[str, object]:
        known = {attribute.name for attribute in spec.attributes}
        for name in raw_attributes:
            if name not in known:
                self.error(
                    UnexpectedAttribute,
                    f'Attribute "{name}" of <{spec.name}> not expected',
                )

        attributes: Dict[str, object] = {}
        for attribute in spec.attributes:
            value = raw_attributes.get(attribute.name)
            if not value:
                if attribute.required:
                    self.error(
                        MissingAttribute,
                        f'Required attribute "{attribute.name}" of <{spec.name}> '
                        "not specified",
                    )
                if value is None:
                    continue
            if attribute.parse:
                attributes[attribute.name] = attribute.parse(self, value)
            else:
                attributes[attribute.name] = value
        return attributes

    def parse(self, document: Union[str, bytes]) -> List[LibraryDescriptor]:
        try:
            self._expat.Parse(document, True)
        except expat.ExpatError as error:
            raise XmlSyntaxError(
                expat.ErrorString(error.code), error.lineno
            ) from error
        return [library.build() for library in self.libraries]


def parse_library_list(
    document: Union[str, bytes], machine: Machine = DEFAULT_MACHINE
) -> List[LibraryDescriptor]:
    """Parse a library list document.

    Args:
        document: The XML text reported by the target.
        machine: The target architecture, which bounds the addresses.

    Returns:
        The libraries, in document order.

    Raises:
        ParseError: If the document violates the library list grammar. No
            libraries are returned in that case, even if some were valid.
        XmlSupportUnavailable: On the first call in an interpreter without
            XML support. Later calls return an empty list.

    """
    global _have_warned  # pylint: disable=global-statement

    if expat is None:
        if _have_warned:
            return []
        _have_warned = True
        raise XmlSupportUnavailable(
            "Can not parse XML library list; XML support is not available"
        )

    libraries = LibraryListParser(machine).parse(document)
    logger.info(f"Parsed {len(libraries)} libraries from the target library list")
    return libraries
