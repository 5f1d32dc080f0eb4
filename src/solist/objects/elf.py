"""ELF binary objects, read with pyelftools.

Examples:
    >>> with open_elf("/lib/x86_64-linux-gnu/libc.so.6") as binary:
    ...     relocate(descriptor, binary)
"""

from contextlib import contextmanager
from typing import IO, Iterator, List, Optional

from elftools.common.exceptions import ELFError
from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import Section
from elftools.elf.segments import Segment
from loguru import logger

from solist.exceptions import LoaderError
from solist.machine import Machine, machine_from_elf
from solist.objects.base import (
    BinaryObject,
    SectionInfo,
    SegmentData,
    assign_sections_to_segments,
)


@contextmanager
def elf_errors(filename: str) -> Iterator[None]:
    """Report pyelftools' errors about a malformed file as ``LoaderError``."""
    try:
        yield
    except ELFError as error:
        raise LoaderError(f"{filename}: {error}") from error


def is_loadable_segment(segment: Segment) -> bool:
    # A segment is loadable if it's type is LOAD, and it's not empty (memory
    # size > 0)
    return bool(segment["p_type"] == "PT_LOAD") and segment["p_memsz"] > 0


def is_tls_bss(section: Section) -> bool:
    # ".tbss" is laid out as if it were part of a segment, but it's only a
    # template for the TLS blocks
    return bool(section["sh_flags"] & SH_FLAGS.SHF_TLS) and (
        section["sh_type"] == "SHT_NOBITS"
    )


def section_info(index: int, section: Section) -> SectionInfo:
    return SectionInfo(
        index=index,
        name=section.name,
        address=section["sh_addr"],
        size=section["sh_size"],
        is_allocatable=bool(section["sh_flags"] & SH_FLAGS.SHF_ALLOC),
        is_tls_bss=is_tls_bss(section),
    )


class ElfObject(BinaryObject):
    """An ELF file opened with pyelftools.

    Sections are reported in section header table order, including the null
    section at index 0 (which is never allocatable). The segments are the
    ``PT_LOAD`` program headers.
    """

    #: The parsed ELF file
    elf: ELFFile
    #: Where the ELF was read from (for diagnostics)
    filename: str

    def __init__(self, elf: ELFFile, filename: str = "<stream>"):
        self.elf = elf
        self.filename = filename

    @staticmethod
    def from_stream(stream: IO, filename: str = "<stream>") -> "ElfObject":
        with elf_errors(filename):
            return ElfObject(ELFFile(stream), filename)

    @property
    def machine(self) -> Machine:
        return machine_from_elf(self.elf)

    @property
    def relocatable(self) -> bool:
        return bool(self.elf.header["e_type"] == "ET_REL")

    @property
    def section_count(self) -> int:
        with elf_errors(self.filename):
            return int(self.elf.num_sections())

    def iter_sections(self) -> Iterator[SectionInfo]:
        # Section headers are read lazily, so a truncated table only shows
        # up here
        with elf_errors(self.filename):
            for index, section in enumerate(self.elf.iter_sections()):
                yield section_info(index, section)

    def iter_load_segments(self) -> Iterator[Segment]:
        with elf_errors(self.filename):
            yield from filter(is_loadable_segment, self.elf.iter_segments())

    def get_segment_data(self) -> Optional[SegmentData]:
        segments: List[Segment] = list(self.iter_load_segments())
        if not segments:
            return None

        bases = [segment["p_vaddr"] for segment in segments]
        sizes = [segment["p_memsz"] for segment in segments]
        segment_info = assign_sections_to_segments(
            self.iter_sections(), bases, sizes, self.section_count
        )

        for section in self.iter_allocatable_sections():
            if (
                section.size > 0
                and not section.is_tls_bss
                and not segment_info[section.index]
            ):
                logger.warning(
                    f'{self.filename}: Loadable section "{section.name}" '
                    "outside of ELF segments"
                )

        return SegmentData(bases=bases, sizes=sizes, segment_info=segment_info)


@contextmanager
def open_elf(filename: str) -> Iterator[ElfObject]:
    """Open an ELF file for the duration of a ``with`` block.

    Raises:
        LoaderError: If the file cannot be read or is not an ELF.
    """
    try:
        stream = open(filename, "rb")
    except OSError as error:
        raise LoaderError(f"Cannot open {filename}: {error}") from error

    with stream:
        yield ElfObject.from_stream(stream, filename)
