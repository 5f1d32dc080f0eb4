"""Computation of the section offsets and the address range of a library.

The target reports either the base address of every allocatable section of a
library, or the base address of every segment. Either way the result is an
offset per section of the library's binary object, plus the range of
addresses the library is reported to occupy.

Relocation is computed once per library, the first time it's needed, and a
problem with one library never stops the others from being relocated: such
problems are returned (and logged) as ``Diagnostic``\\ s.

Examples:
    >>> with open_elf(library.name) as binary:
    ...     diagnostics = relocate(library, binary)
    >>> library.offsets
    [0, 1073741824, 1073741824, 0, ...]
    >>> library.address_range
    AddressRange(low=1073741824, high=1073750015)
"""

from enum import Enum
from typing import Callable, ContextManager, List, Optional, Sequence, Tuple

import attr
from loguru import logger

from solist.commons import AddressRange
from solist.exceptions import LoaderError
from solist.library import LibraryDescriptor
from solist.objects.base import BinaryObject


class DiagnosticKind(Enum):
    WRONG_SECTION_COUNT = "wrong number of ALLOC sections"
    NO_SEGMENTS = "no segments"
    BAD_OFFSETS = "bad offsets"
    OBJECT_UNAVAILABLE = "object unavailable"


@attr.s(auto_attribs=True, frozen=True)
class Diagnostic:
    """A non-fatal problem relocating one library."""

    #: Name of the library that could not be (fully) relocated
    library: str
    kind: DiagnosticKind
    #: Extra information (e.g. why the binary object could not be opened)
    detail: str = ""

    @property
    def message(self) -> str:
        message = f'Could not relocate shared library "{self.library}": {self.kind.value}'
        if self.detail:
            message += f" ({self.detail})"
        return message

    def __str__(self) -> str:
        return self.message


def relocate_by_sections(
    bases: Sequence[int], binary: BinaryObject, offsets: List[int]
) -> Tuple[Optional[AddressRange], List[DiagnosticKind]]:
    """Pair the n-th base with the n-th allocatable section."""
    allocatable = list(binary.iter_allocatable_sections())
    if len(allocatable) != len(bases):
        return None, [DiagnosticKind.WRONG_SECTION_COUNT]

    spans = []
    for section, base in zip(allocatable, bases):
        offsets[section.index] = base
        if section.size > 0:
            spans.append((base, base + section.size - 1))

    if not spans:
        return AddressRange(0, 0), []

    low = min(low for low, _ in spans)
    high = max(high for _, high in spans)
    return AddressRange(low, high), []


def segment_range(
    bases: Sequence[int], natural_bases: Sequence[int], natural_sizes: Sequence[int]
) -> AddressRange:
    """The range of the leading run of segments that moved by the same amount
    as the first one.

    Segments for which no base was provided are assumed to have moved with
    the first one.
    """
    delta = bases[0] - natural_bases[0]

    last = 0
    for index in range(1, len(natural_bases)):
        if index < len(bases) and bases[index] - natural_bases[index] != delta:
            break
        last = index

    return AddressRange(bases[0], natural_bases[last] + natural_sizes[last] + delta)


def relocate_by_segments(
    bases: Sequence[int], binary: BinaryObject, offsets: List[int]
) -> Tuple[Optional[AddressRange], List[DiagnosticKind]]:
    data = binary.get_segment_data()
    if data is None or not data.num_segments:
        return None, [DiagnosticKind.NO_SEGMENTS]

    problems = []
    if not binary.map_offsets_to_segments(data, offsets, bases):
        problems.append(DiagnosticKind.BAD_OFFSETS)
    if not bases:
        return None, problems

    # The range is reported even if the offsets could not be mapped
    return segment_range(bases, data.bases, data.sizes), problems


def relocate(library: LibraryDescriptor, binary: BinaryObject) -> List[Diagnostic]:
    """Compute the offsets and address range of a library, unless that was
    already done.

    Args:
        library: The library to relocate. Its ``offsets`` and
            ``address_range`` are updated in place.
        binary: The opened binary object of the library.

    Returns:
        The problems encountered (if any). A library that could not be
        relocated ends up with all-zero offsets and no address range.

    """
    with library.lock:
        if library.offsets is not None:
            return []

        offsets = [0] * binary.section_count
        if library.uses_sections:
            address_range, problems = relocate_by_sections(
                library.bases.addresses, binary, offsets
            )
        else:
            address_range, problems = relocate_by_segments(
                library.bases.addresses, binary, offsets
            )

        library.offsets = offsets
        library.address_range = address_range

    diagnostics = [Diagnostic(library.name, kind) for kind in problems]
    for diagnostic in diagnostics:
        logger.warning(diagnostic.message)

    if address_range is not None:
        logger.info(
            f"{library.name} relocated to "
            f"{address_range.low:#x}..{address_range.high:#x}"
        )
    return diagnostics


def relocate_all(
    libraries: Sequence[LibraryDescriptor],
    open_binary: Callable[[str], ContextManager[BinaryObject]],
) -> List[Diagnostic]:
    """Relocate a batch of libraries.

    Args:
        libraries: The libraries to relocate.
        open_binary: Opens the binary object of a library given its name
            (``open_elf`` for example). Should raise ``LoaderError`` if the
            object cannot be opened.

    Returns:
        The problems of all the libraries, in order.

    """
    diagnostics: List[Diagnostic] = []
    for library in libraries:
        if library.relocated:
            continue
        try:
            with open_binary(library.name) as binary:
                diagnostics += relocate(library, binary)
        except LoaderError as error:
            diagnostic = Diagnostic(
                library.name, DiagnosticKind.OBJECT_UNAVAILABLE, str(error)
            )
            logger.warning(diagnostic.message)
            diagnostics.append(diagnostic)
    return diagnostics
