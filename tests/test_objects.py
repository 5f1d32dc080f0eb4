"""Tests for the binary object views."""

import io

import pytest
from elf_test_utils import (
    ET_REL,
    SHARED_LIBRARY_SECTIONS,
    SHF_ALLOC,
    SHT_PROGBITS,
    ElfSection,
    build_elf,
    build_shared_library,
    build_truncated_library,
)

from solist.commons import AddressRange
from solist.exceptions import LoaderError
from solist.library import LibraryDescriptor, Sections, Segments
from solist.machine import DEFAULT_MACHINE
from solist.objects.base import BinaryObject, SegmentData
from solist.objects.elf import ElfObject, open_elf
from solist.objects.static import StaticObject
from solist.relocation import DiagnosticKind, relocate


@pytest.fixture
def shared_library() -> ElfObject:
    return ElfObject.from_stream(io.BytesIO(build_shared_library()), "libtest.so")


class TestStaticObject:
    def test_section_count(self, mixed_sections_object):
        assert mixed_sections_object.section_count == 5

    def test_allocatable_sections(self, mixed_sections_object):
        names = [s.name for s in mixed_sections_object.iter_allocatable_sections()]
        assert names == [".text", ".data", ".bss"]

    def test_get_section_by_name(self, mixed_sections_object):
        assert mixed_sections_object.get_section_by_name(".data").index == 3
        assert mixed_sections_object.get_section_by_name(".plt") is None

    def test_explicit_segments(self, three_segment_object):
        data = three_segment_object.get_segment_data()

        assert data.bases == [100, 200, 500]
        assert data.sizes == [50, 100, 20]
        assert data.segment_info == [1, 2, 3]

    def test_default_segment(self, mixed_sections_object):
        data = mixed_sections_object.get_segment_data()

        assert data.bases == [0]
        assert data.sizes == [0x240]
        assert data.segment_info == [0, 1, 0, 1, 1]

    def test_no_allocatable_sections(self):
        binary = StaticObject.from_layout(sections=[(".comment", 0, 0x10, False)])
        assert binary.get_segment_data() is None

    def test_machine_is_unknown(self, mixed_sections_object):
        assert mixed_sections_object.machine == DEFAULT_MACHINE

    def test_relocatable_object(self):
        binary = StaticObject.from_layout(
            sections=[(".text", 0, 0x10, True)], relocatable=True
        )
        assert binary.get_segment_data() is None


class TestMapOffsetsToSegments:
    def test_maps_each_section_to_its_segment(self):
        data = SegmentData(bases=[0x0, 0x2000], sizes=[0x1000, 0x1000], segment_info=[0, 1, 2])
        offsets = [0, 0, 0]

        assert BinaryObject.map_offsets_to_segments(data, offsets, [0x10000, 0x30000])
        assert offsets == [0, 0x10000, 0x2E000]

    def test_no_bases(self):
        data = SegmentData(bases=[0x0], sizes=[0x1000], segment_info=[1])
        offsets = [0]

        assert not BinaryObject.map_offsets_to_segments(data, offsets, [])
        assert offsets == [0]

    def test_no_data(self):
        assert not BinaryObject.map_offsets_to_segments(None, [0], [0x1000])

    def test_invalid_segment_reference(self):
        data = SegmentData(bases=[0x0], sizes=[0x1000], segment_info=[1, 2])
        offsets = [0, 0]

        assert not BinaryObject.map_offsets_to_segments(data, offsets, [0x1000])
        assert offsets == [0, 0]


class TestElfObject:
    def test_sections(self, shared_library):
        sections = list(shared_library.iter_sections())

        assert [section.name for section in sections] == [
            "",
            ".text",
            ".data",
            ".bss",
            ".tbss",
            ".comment",
            ".shstrtab",
        ]
        assert [section.index for section in sections] == list(range(7))
        assert shared_library.section_count == 7

    def test_section_attributes(self, shared_library):
        text = shared_library.get_section_by_name(".text")

        assert text.address == 0x1000
        assert text.size == 0x200
        assert text.is_allocatable
        assert not text.is_tls_bss
        assert shared_library.get_section_by_name(".tbss").is_tls_bss
        assert not shared_library.get_section_by_name(".comment").is_allocatable

    def test_machine(self, shared_library):
        machine = shared_library.machine

        assert machine.name == "EM_X86_64"
        assert machine.bit_width == 64

    def test_segment_data(self, shared_library):
        data = shared_library.get_segment_data()

        assert data.bases == [0x1000, 0x3000]
        assert data.sizes == [0x200, 0x180]
        # .tbss takes no room in the segment it appears in
        assert data.segment_info == [0, 1, 2, 2, 0, 0, 0]

    def test_relocatable_file_has_no_segments(self):
        image = build_elf(SHARED_LIBRARY_SECTIONS, e_type=ET_REL)
        binary = ElfObject.from_stream(io.BytesIO(image))

        assert binary.relocatable
        assert binary.get_segment_data() is None

    def test_section_outside_segments(self, warnings_logged):
        sections = SHARED_LIBRARY_SECTIONS + [
            ElfSection(".stray", SHT_PROGBITS, SHF_ALLOC, 0x9000, 0x10)
        ]
        binary = ElfObject.from_stream(
            io.BytesIO(build_elf(sections, [(0x1000, 0x200), (0x3000, 0x180)])),
            "libstray.so",
        )

        data = binary.get_segment_data()

        assert data.segment_info[6] == 0
        assert warnings_logged == [
            'libstray.so: Loadable section ".stray" outside of ELF segments'
        ]

    def test_relocate_by_segments(self, shared_library):
        library = LibraryDescriptor(
            "libtest.so", Segments([0x7F0000001000, 0x7F0000003000])
        )

        assert relocate(library, shared_library) == []

        delta = 0x7F0000000000
        assert library.offsets == [0, delta, delta, delta, 0, 0, 0]
        assert library.address_range == AddressRange(
            0x7F0000001000, 0x3000 + 0x180 + delta
        )

    def test_relocate_by_sections(self, shared_library):
        library = LibraryDescriptor(
            "libtest.so", Sections([0x10000, 0x20000, 0x20100, 0x30000])
        )

        assert relocate(library, shared_library) == []

        assert library.offsets == [0, 0x10000, 0x20000, 0x20100, 0x30000, 0, 0]
        assert library.address_range == AddressRange(0x10000, 0x3000F)

    def test_relocate_by_sections_count_mismatch(self, shared_library):
        library = LibraryDescriptor("libtest.so", Sections([0x10000]))

        diagnostics = relocate(library, shared_library)

        assert diagnostics[0].kind == DiagnosticKind.WRONG_SECTION_COUNT
        assert library.offsets == [0] * 7

    def test_truncated_section_table(self):
        """Section headers past the end of the file are only noticed when the
        sections are read.
        """
        binary = ElfObject.from_stream(
            io.BytesIO(build_truncated_library()), "libbroken.so"
        )

        with pytest.raises(LoaderError, match="libbroken.so"):
            list(binary.iter_sections())

    def test_relocate_truncated_section_table(self):
        binary = ElfObject.from_stream(
            io.BytesIO(build_truncated_library()), "libbroken.so"
        )
        library = LibraryDescriptor("libbroken.so", Segments([0x7F0000001000]))

        with pytest.raises(LoaderError):
            relocate(library, binary)
        assert not library.relocated

    def test_not_an_elf(self):
        with pytest.raises(LoaderError, match="notes.txt"):
            ElfObject.from_stream(io.BytesIO(b"just some text"), "notes.txt")


class TestOpenElf:
    def test_open(self, tmp_path):
        path = tmp_path / "libtest.so"
        path.write_bytes(build_shared_library())

        with open_elf(str(path)) as binary:
            assert binary.filename == str(path)
            assert binary.section_count == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(LoaderError, match="Cannot open"):
            with open_elf(str(tmp_path / "missing.so")):
                pass
