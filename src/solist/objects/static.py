"""A binary object whose layout is given up front instead of being read from a
file.

Examples:
    >>> binary = StaticObject.from_layout(
    ...     sections=[(".text", 0x0, 0x100, True), (".comment", 0x0, 0x20, False)],
    ...     segments=[(0x0, 0x100)],
    ... )
    >>> binary.get_segment_data().segment_info
    [1, 0]
"""

from typing import Iterable, Iterator, List, Optional, Tuple

import attr

from solist.objects.base import (
    BinaryObject,
    SectionInfo,
    SegmentData,
    assign_sections_to_segments,
)


@attr.s(auto_attribs=True, frozen=True)
class StaticSegment:
    address: int
    size: int


@attr.s(auto_attribs=True)
class StaticObject(BinaryObject):
    #: All sections, in native order (``index`` must match the position)
    sections: List[SectionInfo] = attr.Factory(list)
    #: Explicit segments. Without them, one segment spanning all allocatable
    #: sections is assumed (unless the object is relocatable).
    segments: Optional[List[StaticSegment]] = None
    is_relocatable: bool = False

    @property
    def relocatable(self) -> bool:
        return self.is_relocatable

    def iter_sections(self) -> Iterator[SectionInfo]:
        yield from self.sections

    def get_segment_data(self) -> Optional[SegmentData]:
        if self.segments is None:
            return self.default_segment_data()
        if not self.segments:
            return None

        bases = [segment.address for segment in self.segments]
        sizes = [segment.size for segment in self.segments]
        return SegmentData(
            bases=bases,
            sizes=sizes,
            segment_info=assign_sections_to_segments(
                self.sections, bases, sizes, len(self.sections)
            ),
        )

    @classmethod
    def from_layout(
        cls,
        sections: Iterable[Tuple[str, int, int, bool]],
        segments: Optional[Iterable[Tuple[int, int]]] = None,
        relocatable: bool = False,
    ) -> "StaticObject":
        """Build an object from ``(name, address, size, allocatable)`` section
        tuples and optional ``(address, size)`` segment tuples.
        """
        section_infos = [
            SectionInfo(index, name, address, size, allocatable)
            for index, (name, address, size, allocatable) in enumerate(sections)
        ]
        segment_infos = None
        if segments is not None:
            segment_infos = [StaticSegment(address, size) for address, size in segments]
        return cls(section_infos, segment_infos, relocatable)
