"""In-memory representation of the libraries reported by the target.

A ``LibraryDescriptor`` is created by the parser for every ``<library>``
element. Its relocation state (offsets and address range) is filled in later,
exactly once, when the library's binary object becomes available.
"""

import threading
from typing import List, Optional, Union

import attr

from solist.commons import AddressRange


@attr.s(auto_attribs=True)
class Segments:
    """Load addresses of each independently relocatable segment."""

    addresses: List[int] = attr.Factory(list)

    def __len__(self) -> int:
        return len(self.addresses)

    def __getitem__(self, index: int) -> int:
        return self.addresses[index]


@attr.s(auto_attribs=True)
class Sections:
    """Load addresses of each allocatable section, in object order."""

    addresses: List[int] = attr.Factory(list)

    def __len__(self) -> int:
        return len(self.addresses)

    def __getitem__(self, index: int) -> int:
        return self.addresses[index]


Bases = Union[Segments, Sections]


@attr.s(auto_attribs=True, eq=False)
class LibraryDescriptor:
    """Everything the target told us about one loaded library, together with
    the relocation computed for it.
    """

    #: The name the target reported for the library
    name: str
    #: Either the segment bases or the section bases of the library
    bases: Bases
    #: Per-section relocation offsets, indexed by the binary object's section
    #: index. ``None`` until the library was relocated.
    offsets: Optional[List[int]] = None
    #: The range the library occupies in memory (only once relocated, and only
    #: if relocation succeeded)
    address_range: Optional[AddressRange] = None
    #: Guards the single unset -> set transition of ``offsets``
    lock: threading.Lock = attr.ib(factory=threading.Lock, repr=False)

    @property
    def relocated(self) -> bool:
        return self.offsets is not None

    @property
    def uses_segments(self) -> bool:
        return isinstance(self.bases, Segments)

    @property
    def uses_sections(self) -> bool:
        return isinstance(self.bases, Sections)

    def offset_of(self, section_index: int) -> int:
        """The offset to apply to the section with the given index.

        Raises:
            LookupError: If the library was not relocated yet.
        """
        if self.offsets is None:
            raise LookupError(f"{self.name} has not been relocated")
        return self.offsets[section_index]
