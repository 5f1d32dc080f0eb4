"""Shared-object bookkeeping for targets that report their libraries.

``TargetSolib`` ties the pieces together: it fetches the library list from the
target (through a caller-supplied callable), parses it into ``SharedObject``\\ s
and relocates section addresses of each library on demand.

Examples:
    >>> solib = TargetSolib(lambda: connection.read_object("libraries"), open_elf)
    >>> sos = solib.current_sos()
    >>> solib.relocate_libraries(sos)
    []
    >>> for so in sos:
    ...     with open_elf(so.so_name) as binary:
    ...         for section in binary.iter_allocatable_sections():
    ...             target = TargetSection.from_section(section)
    ...             print(solib.relocate_section_addresses(so, target, binary))
"""

from typing import Callable, ContextManager, Iterable, List, Optional, Tuple, Union

import attr
from loguru import logger

from solist.commons import PLT_SECTION_NAME, truncate_name
from solist.exceptions import LoaderError, ParseError
from solist.library import LibraryDescriptor
from solist.machine import DEFAULT_MACHINE, Machine
from solist.objects.base import BinaryObject, SectionInfo
from solist.parser import parse_library_list
from solist.relocation import Diagnostic, relocate, relocate_all

DocumentSource = Callable[[], Optional[Union[str, bytes]]]
BinaryOpener = Callable[[str], ContextManager[BinaryObject]]


@attr.s(auto_attribs=True, eq=False)
class SharedObject:
    """A library, as presented to the rest of the debugger."""

    #: Name used to look up the library's file
    so_name: str
    #: Name as reported by the target
    so_original_name: str
    library: LibraryDescriptor

    @staticmethod
    def from_library(library: LibraryDescriptor) -> "SharedObject":
        name = truncate_name(library.name)
        return SharedObject(so_name=name, so_original_name=name, library=library)

    @property
    def addr_low(self) -> Optional[int]:
        if self.library.address_range is None:
            return None
        return self.library.address_range.low

    @property
    def addr_high(self) -> Optional[int]:
        if self.library.address_range is None:
            return None
        return self.library.address_range.high


@attr.s(auto_attribs=True, frozen=True)
class TargetSection:
    """A section of a library, at the addresses the debugger sees it."""

    #: Index of the section in the library's binary object
    index: int
    addr: int
    endaddr: int

    @staticmethod
    def from_section(section: SectionInfo) -> "TargetSection":
        return TargetSection(section.index, section.address, section.end)


class TargetSolib:
    """Shared library support driven entirely by the library list the target
    reports.
    """

    #: Fetches the current library list document (``None`` if the target has
    #: none to offer)
    read_document: DocumentSource
    #: Opens the binary object of a library given its name (``open_elf`` for
    #: example), for relocations requested without an already opened object
    open_binary: Optional[BinaryOpener]
    #: The target's architecture. If unknown, the architecture of each
    #: library's binary object is used to wrap its addresses.
    machine: Optional[Machine]

    def __init__(
        self,
        read_document: DocumentSource,
        open_binary: Optional[BinaryOpener] = None,
        machine: Optional[Machine] = None,
    ):
        self.read_document = read_document
        self.open_binary = open_binary
        self.machine = machine

    def _opener(self) -> BinaryOpener:
        if self.open_binary is None:
            raise LoaderError("No way to open the binary objects of libraries")
        return self.open_binary

    def current_sos(self) -> List[SharedObject]:
        """Fetch and parse the library list.

        Returns:
            One ``SharedObject`` per reported library, in the order reported.
            An invalid document results in no libraries at all.

        """
        document = self.read_document()
        if document is None:
            return []

        try:
            libraries = parse_library_list(document, self.machine or DEFAULT_MACHINE)
        except ParseError as error:
            logger.warning(str(error))
            return []

        return [SharedObject.from_library(library) for library in libraries]

    def relocate_section_addresses(
        self,
        so: SharedObject,
        section: TargetSection,
        binary: Optional[BinaryObject] = None,
    ) -> TargetSection:
        """Move a section of a library to its runtime address.

        The library's offsets are computed the first time one of its sections
        is relocated; we can't do it earlier, since the binary object needs to
        be opened first.

        Args:
            so: The library the section belongs to.
            section: The section, at its link-time addresses.
            binary: The opened binary object of the library. If not given,
                it's opened with ``open_binary``.

        Raises:
            LoaderError: If the binary object has to be opened and can't be.

        """
        if binary is None:
            with self._opener()(so.library.name) as opened:
                return self.relocate_section_addresses(so, section, opened)

        relocate(so.library, binary)
        offset = so.library.offset_of(section.index)
        machine = self.machine or binary.machine
        return TargetSection(
            index=section.index,
            addr=machine.wrap_address(section.addr + offset),
            endaddr=machine.wrap_address(section.endaddr + offset),
        )

    def relocate_libraries(self, sos: Iterable[SharedObject]) -> List[Diagnostic]:
        """Relocate all the given libraries that aren't yet, opening their
        binary objects with ``open_binary``.

        A library whose object can't be opened is reported and skipped.
        """
        return relocate_all([so.library for so in sos], self._opener())

    def open_symbol_file_object(self) -> bool:
        """The main symbol file can't be located from what the target
        reports; the user has to specify it.
        """
        return False

    def in_dynsym_resolve_code(
        self, pc: int, loaded: Iterable[Tuple[SharedObject, BinaryObject]]
    ) -> bool:
        """Whether ``pc`` is in the dynamic linker's resolution code.

        There's no known address range for the dynamic linker (there may not
        be one in the program's address space), so only PLT entries, which
        may be import stubs, are reported.
        """
        for so, binary in loaded:
            if not so.library.relocated:
                continue
            plt = binary.get_section_by_name(PLT_SECTION_NAME)
            if plt is None:
                continue
            relocated = self.relocate_section_addresses(
                so, TargetSection.from_section(plt), binary
            )
            if relocated.addr <= pc < relocated.endaddr:
                return True
        return False

    def solib_create_inferior_hook(self):
        pass

    def clear_solib(self):
        pass
