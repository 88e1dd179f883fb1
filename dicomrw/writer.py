"""Encoding of DICOM elements and datasets to a binary stream."""

from __future__ import annotations

import io
from dataclasses import dataclass, replace
from typing import Any, BinaryIO, Optional, Sequence

from .binio import DicomWriter
from .dictionary import UNKNOWN_VR, find, has_long_length
from .model import (
    FILE_META_INFORMATION_GROUP_LENGTH,
    FILE_META_INFORMATION_VERSION,
    GROUP_SEQ_ITEM,
    IMPLICIT_VR_LITTLE_ENDIAN,
    ITEM,
    ITEM_DELIMITATION_ITEM,
    LITTLE_ENDIAN,
    MAGIC_WORD,
    MEDIA_STORAGE_SOP_CLASS_UID,
    MEDIA_STORAGE_SOP_INSTANCE_UID,
    METADATA_GROUP,
    PIXEL_DATA,
    SEQUENCE_DELIMITATION_ITEM,
    TRANSFER_SYNTAX_UID,
    VL_UNDEFINED_LENGTH,
    Dataset,
    DicomError,
    Element,
    ElementNotFoundError,
    PixelDataInfo,
    SequenceItem,
    Tag,
    ValueType,
    new_element,
)

_SPACE_PADDED_VRS = frozenset(
    {"DT", "LO", "LT", "PN", "SH", "ST", "UT", "DS", "CS", "TM", "AE", "IS", "UN"}
)
_SAMPLE_SIZES = {8: 1, 16: 2, 32: 4}
_DELIMITERS = (SEQUENCE_DELIMITATION_ITEM, ITEM_DELIMITATION_ITEM)


@dataclass
class WriteOptions:
    """Switches that relax checks while writing."""

    skip_vr_verification: bool = False
    skip_value_type_verification: bool = False
    default_missing_transfer_syntax: bool = False


class Writer:
    """Writes DICOM elements or whole datasets to a binary stream."""

    def __init__(self, out: BinaryIO, options: Optional[WriteOptions] = None) -> None:
        self._writer = DicomWriter(out, LITTLE_ENDIAN, False)
        self.options = options if options is not None else WriteOptions()

    def set_transfer_syntax(self, byte_order: str, implicit: bool) -> None:
        """Set the byte order and VR encoding used for following elements."""
        self._writer.set_transfer_syntax(byte_order, implicit)

    def write_element(self, element: Element) -> None:
        """Write a single element in the current transfer syntax."""
        _write_element(self._writer, element, self.options)

    def write_dataset(self, dataset: Dataset) -> None:
        """Write a complete file: preamble, metadata header and all elements."""
        meta = [e for e in dataset.sorted_elements() if e.tag.group == METADATA_GROUP]
        _write_file_header(self._writer, dataset, meta, self.options)

        try:
            byte_order, implicit = dataset.transfer_syntax()
        except ElementNotFoundError:
            if not self.options.default_missing_transfer_syntax:
                raise
            byte_order, implicit = LITTLE_ENDIAN, True
        self._writer.set_transfer_syntax(byte_order, implicit)

        for element in dataset.sorted_elements():
            if element.tag.group != METADATA_GROUP:
                _write_element(self._writer, element, self.options)


def write(out: BinaryIO, dataset: Dataset, options: Optional[WriteOptions] = None) -> None:
    """Write dataset to out as a complete DICOM file."""
    Writer(out, options).write_dataset(dataset)


def verify_vr_or_default(tag: Tag, vr: str, options: Optional[WriteOptions] = None) -> str:
    """Return the VR to write for tag, checking it against the dictionary."""
    options = options if options is not None else WriteOptions()
    if vr and options.skip_vr_verification:
        return vr
    try:
        info = find(tag)
    except KeyError:
        # Unknown or private tag: trust the caller, or fall back to UN.
        return vr or UNKNOWN_VR
    if not vr:
        return info.vr
    if not options.skip_vr_verification and info.vr != vr:
        raise DicomError(
            f"VR mismatch for tag {tag}: element VR is {vr}, "
            f"but the DICOM standard defines it as {info.vr}"
        )
    return vr


def verify_value_type(tag: Tag, value_type: Optional[ValueType], vr: str) -> None:
    """Raise DicomError if value_type does not fit the VR."""
    if vr in ("US", "UL", "SL", "SS", "AT"):
        ok = value_type is ValueType.INTS
    elif vr == "SQ":
        ok = value_type is ValueType.SEQUENCES
    elif vr == "NA":
        ok = value_type is ValueType.SEQUENCE_ITEM
    elif vr in ("OW", "OB", "UN"):
        expected = ValueType.PIXEL_DATA if tag == PIXEL_DATA else ValueType.BYTES
        ok = value_type is expected
    elif vr in ("FL", "FD"):
        ok = value_type is ValueType.FLOATS
    else:
        ok = value_type is ValueType.STRINGS
    if not ok:
        raise DicomError(
            f"value type {value_type} of tag {tag} does not match VR {vr}"
        )


def write_strings(writer: DicomWriter, values: Sequence[str], vr: str) -> None:
    """Write backslash-joined strings, padded to an even length."""
    data = "\\".join(values).encode("utf-8", "surrogateescape")
    writer.write_bytes(data)
    if len(data) % 2:
        writer.write_bytes(b" " if vr in _SPACE_PADDED_VRS else b"\0")


def write_bytes(writer: DicomWriter, data: bytes, vr: str) -> None:
    """Write an OW, UN or OB byte value."""
    if vr in ("OW", "UN"):
        if len(data) % 2:
            raise DicomError("vr of OW requires even value length")
        writer.write_bytes(data)
    elif vr == "OB":
        writer.write_bytes(data)
        if len(data) % 2:
            writer.write_bytes(b"\0")
    else:
        raise DicomError(f"value type bytes does not match the VR {vr}")


def write_ints(writer: DicomWriter, values: Sequence[int], vr: str) -> None:
    """Write integers as 16- or 32-bit words according to the VR."""
    for value in values:
        if vr in ("US", "SS", "AT"):
            writer.write_uint16(value & 0xFFFF)
        elif vr in ("UL", "SL"):
            writer.write_uint32(value & 0xFFFFFFFF)
        else:
            raise DicomError(f"value type ints does not match the VR {vr}")


def write_floats(writer: DicomWriter, values: Sequence[float], vr: str) -> None:
    """Write floats as 32-bit (FL) or 64-bit (FD) values."""
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DicomError(f"unexpected value type for float: {type(value).__name__}")
        if vr == "FL":
            writer.write_float32(value)
        elif vr == "FD":
            writer.write_float64(value)


def write_pixel_data(writer: DicomWriter, info: PixelDataInfo, vl: int) -> None:
    """Write encapsulated (undefined length) or native PixelData."""
    if vl == VL_UNDEFINED_LENGTH:
        _write_basic_offset_table(writer, info.offsets)
        for frame in info.frames:
            _write_raw_item(writer, frame.encapsulated_data.data)
        _encode_element_header(writer, SEQUENCE_DELIMITATION_ITEM, "", 0)
        return
    if info.intentionally_skipped:
        return
    if info.intentionally_unprocessed:
        writer.write_bytes(info.unprocessed_value_data)
        return
    if not info.frames:
        raise DicomError("native PixelData holds no frames")

    buf = bytearray()
    for frame in info.frames:
        size = _SAMPLE_SIZES.get(frame.native_data.bits_per_sample)
        if size is None:
            raise DicomError("unsupported BitsPerSample value")
        mask = (1 << (8 * size)) - 1
        for pixel in frame.native_data.data:
            for sample in pixel:
                buf += (sample & mask).to_bytes(size, "little")
    writer.write_bytes(bytes(buf))


def _write_file_header(
    writer: DicomWriter,
    dataset: Dataset,
    meta_elements: Sequence[Element],
    options: WriteOptions,
) -> None:
    # The file meta header is always little endian, explicit VR.
    writer.set_transfer_syntax(LITTLE_ENDIAN, False)
    meta = io.BytesIO()
    sub = DicomWriter(meta, LITTLE_ENDIAN, False)
    used = {FILE_META_INFORMATION_GROUP_LENGTH}

    for tag in (
        FILE_META_INFORMATION_VERSION,
        MEDIA_STORAGE_SOP_CLASS_UID,
        MEDIA_STORAGE_SOP_INSTANCE_UID,
    ):
        try:
            _write_element(sub, dataset.find_element_by_tag(tag), options)
        except ElementNotFoundError:
            continue
        used.add(tag)

    try:
        _write_element(sub, dataset.find_element_by_tag(TRANSFER_SYNTAX_UID), options)
        used.add(TRANSFER_SYNTAX_UID)
    except ElementNotFoundError:
        if not options.default_missing_transfer_syntax:
            raise
        default = new_element(TRANSFER_SYNTAX_UID, [IMPLICIT_VR_LITTLE_ENDIAN])
        _write_element(sub, default, options)

    for element in meta_elements:
        if element.tag.group == METADATA_GROUP and element.tag not in used:
            _write_element(sub, element, options)

    writer.write_zeros(128)
    writer.write_string(MAGIC_WORD)
    payload = meta.getvalue()
    length = new_element(FILE_META_INFORMATION_GROUP_LENGTH, [len(payload)])
    _write_element(writer, length, options)
    writer.write_bytes(payload)


def _write_element(writer: DicomWriter, element: Element, options: WriteOptions) -> None:
    vr = verify_vr_or_default(element.tag, element.vr, options)
    value = element.value
    value_type = replace(element, vr=vr).value_type() if value is not None else None

    if value is not None and not options.skip_value_type_verification:
        verify_value_type(element.tag, value_type, vr)

    length = element.value_length
    payload = b""
    if value is not None:
        buf = io.BytesIO()
        sub = DicomWriter(buf, writer.byte_order, writer.implicit)
        _write_value(sub, element.tag, value, value_type, vr, element.value_length, options)
        payload = buf.getvalue()
        length = (
            VL_UNDEFINED_LENGTH
            if element.value_length == VL_UNDEFINED_LENGTH
            else len(payload)
        )

    _encode_element_header(writer, element.tag, vr, length)
    if value is not None:
        writer.write_bytes(payload)


def _write_value(
    writer: DicomWriter,
    tag: Tag,
    value: Any,
    value_type: Optional[ValueType],
    vr: str,
    vl: int,
    options: WriteOptions,
) -> None:
    if vl == VL_UNDEFINED_LENGTH and value_type in (
        ValueType.STRINGS,
        ValueType.BYTES,
        ValueType.INTS,
    ):
        raise DicomError(f"encoding undefined-length element not yet supported: {tag}")

    if value_type is ValueType.STRINGS:
        write_strings(writer, value, vr)
    elif value_type is ValueType.BYTES:
        write_bytes(writer, value, vr)
    elif value_type is ValueType.INTS:
        write_ints(writer, value, vr)
    elif value_type is ValueType.PIXEL_DATA:
        write_pixel_data(writer, value, vl)
    elif value_type is ValueType.SEQUENCE_ITEM:
        _write_sequence_item(writer, value, vl, options)
    elif value_type is ValueType.SEQUENCES:
        _write_sequence(writer, value, vl, options)
    elif value_type is ValueType.FLOATS:
        write_floats(writer, value, vr)
    else:
        raise DicomError(f"value type not supported: {value_type}")


def _write_sequence(
    writer: DicomWriter,
    items: Sequence[SequenceItem],
    vl: int,
    options: WriteOptions,
) -> None:
    for item in items:
        buf = io.BytesIO()
        sub = DicomWriter(buf, writer.byte_order, writer.implicit)
        for element in Dataset(item.elements).sorted_elements():
            _write_element(sub, element, options)
        payload = buf.getvalue()
        _write_element(writer, Element(tag=ITEM, value_length=len(payload)), options)
        writer.write_bytes(payload)
    if vl == VL_UNDEFINED_LENGTH:
        _encode_element_header(writer, SEQUENCE_DELIMITATION_ITEM, "", 0)


def _write_sequence_item(
    writer: DicomWriter,
    item: SequenceItem,
    vl: int,
    options: WriteOptions,
) -> None:
    for element in Dataset(item.elements).sorted_elements():
        _write_element(writer, element, options)
    if vl == VL_UNDEFINED_LENGTH:
        _encode_element_header(writer, ITEM_DELIMITATION_ITEM, "", 0)


def _write_tag(writer: DicomWriter, tag: Tag, vl: int) -> None:
    if vl % 2 and vl != VL_UNDEFINED_LENGTH:
        raise DicomError(
            f"value length must be even, but for tag {tag} it is {vl}"
        )
    writer.write_uint16(tag.group)
    writer.write_uint16(tag.element)


def _write_vr_vl(writer: DicomWriter, tag: Tag, vr: str, vl: int) -> None:
    if vl == 0xFFFF:
        vl = VL_UNDEFINED_LENGTH
    if len(vr) != 2 and vl != VL_UNDEFINED_LENGTH and tag not in _DELIMITERS:
        raise DicomError(
            f"value representation must be of length 2, e.g. 'UN'; for tag {tag} it was {vr!r}"
        )
    implicit = writer.implicit or tag.group == GROUP_SEQ_ITEM
    if implicit:
        writer.write_uint32(vl)
        return
    writer.write_string(vr)
    if has_long_length(vr):
        writer.write_zeros(2)
        writer.write_uint32(vl)
    elif vl == VL_UNDEFINED_LENGTH:
        writer.write_uint16(0xFFFF)
    elif vl > 0xFFFF:
        raise DicomError(f"value length {vl} of tag {tag} does not fit VR {vr}")
    else:
        writer.write_uint16(vl)


def _encode_element_header(writer: DicomWriter, tag: Tag, vr: str, vl: int) -> None:
    _write_tag(writer, tag, vl)
    _write_vr_vl(writer, tag, vr, vl)


def _write_raw_item(writer: DicomWriter, data: bytes) -> None:
    _encode_element_header(writer, ITEM, "NA", len(data))
    writer.write_bytes(data)


def _write_basic_offset_table(writer: DicomWriter, offsets: Sequence[int]) -> None:
    buf = io.BytesIO()
    sub = DicomWriter(buf, writer.byte_order, writer.implicit)
    for offset in offsets:
        sub.write_uint32(offset)
    _write_raw_item(writer, buf.getvalue())