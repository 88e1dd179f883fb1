"""Core data model: tags, elements, datasets, pixel data and sequences."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Optional, Sequence

LITTLE_ENDIAN = "little"
BIG_ENDIAN = "big"

MAGIC_WORD = "DICM"
METADATA_GROUP = 0x0002
GROUP_SEQ_ITEM = 0xFFFE
VL_UNDEFINED_LENGTH = 0xFFFFFFFF

IMPLICIT_VR_LITTLE_ENDIAN = "1.2.840.10008.1.2"
EXPLICIT_VR_LITTLE_ENDIAN = "1.2.840.10008.1.2.1"
DEFLATED_EXPLICIT_VR_LITTLE_ENDIAN = "1.2.840.10008.1.2.1.99"
EXPLICIT_VR_BIG_ENDIAN = "1.2.840.10008.1.2.2"

_TRANSFER_SYNTAXES = {
    IMPLICIT_VR_LITTLE_ENDIAN: (LITTLE_ENDIAN, True),
    EXPLICIT_VR_LITTLE_ENDIAN: (LITTLE_ENDIAN, False),
    DEFLATED_EXPLICIT_VR_LITTLE_ENDIAN: (LITTLE_ENDIAN, False),
    EXPLICIT_VR_BIG_ENDIAN: (BIG_ENDIAN, False),
}

_INT_VRS = frozenset({"US", "UL", "SS", "SL", "AT"})
_FLOAT_VRS = frozenset({"FL", "FD"})


class DicomError(Exception):
    """Base error for malformed or unsupported DICOM data."""


class ElementNotFoundError(DicomError, LookupError):
    """Raised when a dataset holds no element with the requested tag."""


@dataclass(frozen=True, order=True)
class Tag:
    """A DICOM attribute tag: (group, element)."""

    group: int
    element: int

    def __str__(self) -> str:
        return f"({self.group:04X},{self.element:04X})"


FILE_META_INFORMATION_GROUP_LENGTH = Tag(0x0002, 0x0000)
FILE_META_INFORMATION_VERSION = Tag(0x0002, 0x0001)
MEDIA_STORAGE_SOP_CLASS_UID = Tag(0x0002, 0x0002)
MEDIA_STORAGE_SOP_INSTANCE_UID = Tag(0x0002, 0x0003)
TRANSFER_SYNTAX_UID = Tag(0x0002, 0x0010)
IMPLEMENTATION_CLASS_UID = Tag(0x0002, 0x0012)
IMPLEMENTATION_VERSION_NAME = Tag(0x0002, 0x0013)
SOP_INSTANCE_UID = Tag(0x0008, 0x0018)
PATIENT_NAME = Tag(0x0010, 0x0010)
SAMPLES_PER_PIXEL = Tag(0x0028, 0x0002)
NUMBER_OF_FRAMES = Tag(0x0028, 0x0008)
ROWS = Tag(0x0028, 0x0010)
COLUMNS = Tag(0x0028, 0x0011)
BITS_ALLOCATED = Tag(0x0028, 0x0100)
PIXEL_DATA = Tag(0x7FE0, 0x0010)
ITEM = Tag(0xFFFE, 0xE000)
ITEM_DELIMITATION_ITEM = Tag(0xFFFE, 0xE00D)
SEQUENCE_DELIMITATION_ITEM = Tag(0xFFFE, 0xE0DD)


class ValueType(IntEnum):
    """Kind of Python value an element carries."""

    STRINGS = 0
    BYTES = 1
    INTS = 2
    PIXEL_DATA = 3
    SEQUENCE_ITEM = 4
    SEQUENCES = 5
    FLOATS = 6


@dataclass
class EncapsulatedFrame:
    """One compressed frame, kept as raw bytes."""

    data: bytes = b""


@dataclass
class NativeFrame:
    """One uncompressed frame: per-pixel lists of samples."""

    bits_per_sample: int = 0
    rows: int = 0
    cols: int = 0
    data: list[list[int]] = field(default_factory=list)


@dataclass
class Frame:
    """A frame of pixel data, either encapsulated or native."""

    encapsulated: bool = False
    encapsulated_data: EncapsulatedFrame = field(default_factory=EncapsulatedFrame)
    native_data: NativeFrame = field(default_factory=NativeFrame)


@dataclass
class PixelDataInfo:
    """Parsed PixelData contents and how they were obtained."""

    frames: list[Frame] = field(default_factory=list)
    is_encapsulated: bool = False
    offsets: list[int] = field(default_factory=list)
    intentionally_skipped: bool = False
    intentionally_unprocessed: bool = False
    unprocessed_value_data: bytes = b""
    parse_error: Optional[Exception] = None


@dataclass
class SequenceItem:
    """One item of a sequence: a set of elements keyed by tag."""

    elements: dict[Tag, "Element"] = field(default_factory=dict)


def _classify(value: Any, vr: str) -> Optional[ValueType]:
    if value is None:
        return None
    if isinstance(value, PixelDataInfo):
        return ValueType.PIXEL_DATA
    if isinstance(value, SequenceItem):
        return ValueType.SEQUENCE_ITEM
    if isinstance(value, (bytes, bytearray)):
        return ValueType.BYTES
    if isinstance(value, (list, tuple)):
        if not value:
            if vr in _INT_VRS:
                return ValueType.INTS
            if vr in _FLOAT_VRS:
                return ValueType.FLOATS
            if vr == "SQ":
                return ValueType.SEQUENCES
            return ValueType.STRINGS
        if all(isinstance(v, SequenceItem) for v in value):
            return ValueType.SEQUENCES
        if all(isinstance(v, str) for v in value):
            return ValueType.STRINGS
        numbers = all(
            isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
        )
        if numbers:
            if vr in _FLOAT_VRS or any(isinstance(v, float) for v in value):
                return ValueType.FLOATS
            return ValueType.INTS
    raise DicomError(f"unexpected value type: {type(value).__name__}")


@dataclass
class Element:
    """A single DICOM data element.

    The value length is an encoding detail and takes no part in equality.
    """

    tag: Tag
    vr: str = ""
    value: Any = None
    value_length: int = field(default=0, compare=False)

    def value_type(self) -> Optional[ValueType]:
        """Return the kind of value held, or None if there is no value."""
        return _classify(self.value, self.vr)


@dataclass
class Dataset:
    """A collection of elements keyed by tag."""

    elements: dict[Tag, Element] = field(default_factory=dict)

    def find_element_by_tag(self, tag: Tag) -> Element:
        """Return the element with the given tag."""
        try:
            return self.elements[tag]
        except KeyError:
            raise ElementNotFoundError(f"element {tag} not found in dataset") from None

    def transfer_syntax(self) -> tuple[str, bool]:
        """Return (byte order, implicit VR) from the TransferSyntaxUID element."""
        elem = self.find_element_by_tag(TRANSFER_SYNTAX_UID)
        if elem.value_type() is not ValueType.STRINGS or not elem.value:
            raise DicomError("TransferSyntaxUID does not hold a string value")
        uid = elem.value[0].strip(" \0")
        return _TRANSFER_SYNTAXES.get(uid, (LITTLE_ENDIAN, False))

    def sorted_elements(self) -> list[Element]:
        """Return the elements in ascending tag order."""
        return [self.elements[t] for t in sorted(self.elements)]


def new_element(tag: Tag, value: Any, vr: str = "") -> Element:
    """Build an element, checking that the value is of a supported kind.

    An empty VR is resolved from the data dictionary when the element is written.
    """
    if isinstance(value, tuple):
        value = list(value)
    elif isinstance(value, bytearray):
        value = bytes(value)
    _classify(value, vr)
    return Element(tag=tag, vr=vr, value=value)


def make_sequence_element(tag: Tag, items: Iterable[Sequence[Element]]) -> Element:
    """Build an SQ element whose items hold the given lists of elements."""
    sequence = [SequenceItem({e.tag: e for e in item}) for item in items]
    return Element(tag=tag, vr="SQ", value=sequence)