"""Architecture properties needed to interpret target addresses."""

import attr
from elftools.elf.elffile import ELFFile


@attr.s(auto_attribs=True, frozen=True)
class Machine:
    #: Architecture name, as reported by the ELF header (e.g. ``EM_X86_64``)
    name: str
    #: Width of a pointer in bits
    bit_width: int

    @property
    def address_mask(self) -> int:
        return (1 << self.bit_width) - 1

    def wrap_address(self, address: int) -> int:
        """Reduce an address modulo the pointer width, the way unsigned
        target arithmetic would.
        """
        return address & self.address_mask


def machine_from_elf(elf: ELFFile) -> Machine:
    return Machine(name=elf.header["e_machine"], bit_width=elf.elfclass)


#: Used when the caller does not know the target architecture
DEFAULT_MACHINE = Machine(name="generic", bit_width=64)
