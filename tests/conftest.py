from typing import List

import pytest
from loguru import logger

from solist.objects.static import StaticObject


@pytest.fixture
def warnings_logged() -> List[str]:
    """Collects the messages of all warnings logged during the test."""
    messages: List[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]),
        level="WARNING",
    )
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def mixed_sections_object() -> StaticObject:
    """An object with allocatable and non-allocatable sections interleaved.

    Index 0 is a null section, like ELF's.
    """
    return StaticObject.from_layout(
        sections=[
            ("", 0, 0, False),
            (".text", 0x0, 0x100, True),
            (".comment", 0x0, 0x30, False),
            (".data", 0x200, 0x40, True),
            (".bss", 0x240, 0x0, True),
        ]
    )


@pytest.fixture
def three_segment_object() -> StaticObject:
    """Segments at 100, 200 and 500 (sizes 50, 100, 20), one section each."""
    return StaticObject.from_layout(
        sections=[
            (".text", 100, 50, True),
            (".data", 200, 100, True),
            (".extra", 500, 20, True),
        ],
        segments=[(100, 50), (200, 100), (500, 20)],
    )
