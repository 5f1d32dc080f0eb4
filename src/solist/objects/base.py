"""The view of a binary object (an opened shared library) the relocation
calculator needs: its sections in native order, and how those sections are
grouped into segments.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Optional, Sequence

import attr
from more_itertools import first, ilen

from solist.machine import DEFAULT_MACHINE, Machine


@attr.s(auto_attribs=True, frozen=True)
class SectionInfo:
    #: Index of the section in the object's native section order
    index: int
    name: str
    #: Link-time address of the section
    address: int
    size: int
    #: Whether the section occupies memory at runtime
    is_allocatable: bool
    #: Thread-local, uninitialized data (``.tbss``). Such a section takes no
    #: room in the segment it appears to be in.
    is_tls_bss: bool = False

    @property
    def end(self) -> int:
        return self.address + self.size


@attr.s(auto_attribs=True)
class SegmentData:
    """The natural (link-time) segment layout of a binary object."""

    #: Link-time address of each segment
    bases: List[int]
    #: Memory size of each segment
    sizes: List[int]
    #: For each section index: 0 if the section is not loaded as part of any
    #: segment, otherwise the 1-based index of the segment containing it
    segment_info: List[int]

    @property
    def num_segments(self) -> int:
        return len(self.bases)


def assign_sections_to_segments(
    sections: Iterable[SectionInfo],
    bases: Sequence[int],
    sizes: Sequence[int],
    section_count: int,
) -> List[int]:
    """Find, for each allocatable section, the first segment that fully
    contains it.

    Returns:
        The ``segment_info`` list for ``SegmentData``.

    """
    segment_info = [0] * section_count
    for section in sections:
        if not section.is_allocatable or section.is_tls_bss:
            continue
        for which, (base, size) in enumerate(zip(bases, sizes), start=1):
            if base <= section.address and section.end <= base + size:
                segment_info[section.index] = which
                break
    return segment_info


class BinaryObject(ABC):
    """Abstract binary object.

    Implementations provide the sections and (optionally) the segment layout;
    mapping segment bases to section offsets is shared.
    """

    @abstractmethod
    def iter_sections(self) -> Iterator[SectionInfo]:
        """Iterate over all the sections, in native order."""

    @abstractmethod
    def get_segment_data(self) -> Optional[SegmentData]:
        """The natural segment layout, or ``None`` if the object cannot be
        relocated by segments.
        """

    @property
    def machine(self) -> Machine:
        """The architecture the object was built for."""
        return DEFAULT_MACHINE

    @property
    def relocatable(self) -> bool:
        """Whether this is a relocatable (not yet linked) object. Such objects
        place every section independently and have no segments.
        """
        return False

    @property
    def section_count(self) -> int:
        return ilen(self.iter_sections())

    def iter_allocatable_sections(self) -> Iterator[SectionInfo]:
        return filter(lambda section: section.is_allocatable, self.iter_sections())

    def get_section_by_name(self, name: str) -> Optional[SectionInfo]:
        return first(
            (section for section in self.iter_sections() if section.name == name),
            None,
        )

    def default_segment_data(self) -> Optional[SegmentData]:
        """A single segment spanning all the allocatable sections.

        This is the layout of objects that don't describe their segments
        explicitly.
        """
        if self.relocatable:
            return None

        allocatable = list(self.iter_allocatable_sections())
        if not allocatable:
            return None

        low = min(section.address for section in allocatable)
        high = max(section.end for section in allocatable)
        segment_info = [0] * self.section_count
        for section in allocatable:
            segment_info[section.index] = 1

        return SegmentData(bases=[low], sizes=[high - low], segment_info=segment_info)

    @staticmethod
    def map_offsets_to_segments(
        data: Optional[SegmentData], offsets: List[int], bases: Sequence[int]
    ) -> bool:
        """Compute the offset of every section that's part of a segment, from
        the runtime base of that segment.

        Segments beyond the provided ``bases`` are assumed to have moved along
        with the last provided one. Sections that are not part of any segment
        keep their current offset.

        Returns:
            Whether the offsets could be computed.

        """
        if data is None or not bases or not data.num_segments:
            return False
        if len(data.segment_info) > len(offsets):
            return False
        if any(not 0 <= which <= data.num_segments for which in data.segment_info):
            return False

        for index, which in enumerate(data.segment_info):
            if not which:
                continue
            which = min(which, len(bases))
            offsets[index] = bases[which - 1] - data.bases[which - 1]
        return True
