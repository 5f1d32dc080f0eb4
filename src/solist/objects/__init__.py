from solist.objects.base import BinaryObject, SectionInfo, SegmentData
from solist.objects.elf import ElfObject, open_elf
from solist.objects.static import StaticObject, StaticSegment

__all__ = [
    "BinaryObject",
    "ElfObject",
    "SectionInfo",
    "SegmentData",
    "StaticObject",
    "StaticSegment",
    "open_elf",
]
