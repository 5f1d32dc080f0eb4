from solist.commons import AddressRange
from solist.library import LibraryDescriptor, Sections, Segments
from solist.parser import parse_library_list
from solist.relocation import Diagnostic, DiagnosticKind, relocate, relocate_all
from solist.solib import SharedObject, TargetSection, TargetSolib

__all__ = [
    "AddressRange",
    "Diagnostic",
    "DiagnosticKind",
    "LibraryDescriptor",
    "Sections",
    "Segments",
    "SharedObject",
    "TargetSection",
    "TargetSolib",
    "parse_library_list",
    "relocate",
    "relocate_all",
]
