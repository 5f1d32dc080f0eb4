import attr

#: The only ``<library-list>`` version this package understands
SUPPORTED_VERSION: str = "1.0"

#: Human readable name of the document, used in parse error messages
DOCUMENT_DESCRIPTION: str = "target library list"

#: Names of shared objects are truncated to fit this many bytes (including the
#: terminator) to stay compatible with fixed-size so-name buffers
SO_NAME_MAX_PATH_SIZE: int = 512

#: Name of the section holding import stubs
PLT_SECTION_NAME: str = ".plt"


def truncate_name(name: str, limit: int = SO_NAME_MAX_PATH_SIZE) -> str:
    return name[: limit - 1]


@attr.s(auto_attribs=True, frozen=True)
class AddressRange:
    """An inclusive ``[low, high]`` span of addresses."""

    low: int
    high: int = attr.ib()

    @high.validator
    def _check_order(self, attribute, value):
        # pylint: disable=unused-argument
        if self.low > value:
            raise ValueError(f"Inverted address range {self.low:#x}..{value:#x}")

    def __contains__(self, address: int) -> bool:
        return self.low <= address <= self.high

    @property
    def size(self) -> int:
        return self.high - self.low + 1
