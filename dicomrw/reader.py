"""Mid-level DICOM parsing: tags, VRs, value lengths, values and elements."""

from __future__ import annotations

import logging
import math
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Iterator, Optional, Union

from .binio import DicomReader
from .dictionary import UNKNOWN_VR, VRKind, find, has_long_length, vr_kind
from .model import (
    FILE_META_INFORMATION_GROUP_LENGTH,
    ITEM,
    ITEM_DELIMITATION_ITEM,
    MAGIC_WORD,
    METADATA_GROUP,
    SEQUENCE_DELIMITATION_ITEM,
    VL_UNDEFINED_LENGTH,
    Dataset,
    DicomError,
    Element,
    EncapsulatedFrame,
    Frame,
    PixelDataInfo,
    SequenceItem,
    Tag,
    ValueType,
)
from .pixel import read_native_frames

logger = logging.getLogger(__name__)

FrameCallback = Optional[Callable[[Frame], None]]

_NO_UNDEFINED_LENGTH_VRS = frozenset({"UC", "UR", "UT"})
_INT_KINDS = frozenset(
    {
        VRKind.UINT16_LIST,
        VRKind.UINT32_LIST,
        VRKind.INT16_LIST,
        VRKind.INT32_LIST,
        VRKind.TAG_LIST,
    }
)


@dataclass
class ParseOptions:
    """Switches that relax or shortcut parsing."""

    allow_missing_meta_element_group_length: bool = False
    skip_pixel_data: bool = False
    skip_processing_pixel_data_value: bool = False
    allow_mismatch_pixel_data_length: bool = False


def _shortest_float32(value: float) -> float:
    """Return the shortest decimal that denotes the same float32 as value."""
    if not math.isfinite(value):
        return value
    for digits in range(1, 10):
        candidate = float(f"{value:.{digits}g}")
        try:
            packed = struct.pack("<f", candidate)
        except OverflowError:
            continue
        if struct.unpack("<f", packed)[0] == value:
            return candidate
    return value


class ElementReader:
    """Reads DICOM elements from a DicomReader."""

    def __init__(
        self,
        source: Union[DicomReader, bytes, bytearray, BinaryIO],
        options: Optional[ParseOptions] = None,
    ) -> None:
        self.raw = source if isinstance(source, DicomReader) else DicomReader(source)
        self.options = options if options is not None else ParseOptions()

    @contextmanager
    def _limited(self, n: int) -> Iterator[None]:
        self.raw.push_limit(n)
        try:
            yield
        finally:
            self.raw.pop_limit()

    def read_tag(self) -> Tag:
        """Read a (group, element) tag; EOFError at the end of the data."""
        group = self.raw.read_uint16()
        element = self.raw.read_uint16()
        return Tag(group, element)

    def read_vr(self, implicit: bool, tag: Tag) -> str:
        """Return the VR: from the dictionary if implicit, else read from the stream."""
        if implicit:
            try:
                return find(tag).vr
            except KeyError:
                return UNKNOWN_VR
        return self.raw.read_string(2)

    def read_vl(self, implicit: bool, tag: Tag, vr: str) -> int:
        """Read the value length field for this VR and encoding."""
        if implicit:
            return self.raw.read_uint32()
        if has_long_length(vr):
            self.raw.skip(2)
            vl = self.raw.read_uint32()
            if vl == VL_UNDEFINED_LENGTH and vr in _NO_UNDEFINED_LENGTH_VRS:
                raise DicomError(
                    "UC, UR and UT may not have an Undefined Length, "
                    "i.e., a Value Length of FFFFFFFFH"
                )
            return vl
        vl = self.raw.read_uint16()
        return VL_UNDEFINED_LENGTH if vl == 0xFFFF else vl

    def read_value(
        self,
        tag: Tag,
        vr: str,
        vl: int,
        dataset: Optional[Dataset] = None,
        on_frame: FrameCallback = None,
    ) -> Any:
        """Read a value of the kind implied by tag and VR."""
        kind = vr_kind(tag, vr)
        if kind is VRKind.BYTES:
            return self.read_bytes(vr, vl)
        if kind is VRKind.DATE:
            return self.read_date(vl)
        if kind in _INT_KINDS:
            return self.read_ints(vr, vl)
        if kind is VRKind.SEQUENCE:
            return self.read_sequence(vl)
        if kind is VRKind.ITEM:
            return self.read_sequence_item(vl)
        if kind is VRKind.PIXEL_DATA:
            return self.read_pixel_data(vl, dataset, on_frame)
        if kind in (VRKind.FLOAT32_LIST, VRKind.FLOAT64_LIST):
            return self.read_floats(vr, vl)
        return self.read_strings(vl)

    def read_header(self) -> dict[Tag, Element]:
        """Read the preamble, magic word and group 0002 metadata elements."""
        data = self.raw.peek(128 + 4)
        if data[128:] != MAGIC_WORD.encode("ascii"):
            raise DicomError("could not find magic word DICM at offset 128")
        self.raw.skip(128 + 4)

        first = self.read_element(None, None)
        meta: dict[Tag, Element] = {first.tag: first}

        has_group_length = (
            first.tag == FILE_META_INFORMATION_GROUP_LENGTH
            and first.value_type() is ValueType.INTS
            and bool(first.value)
        )
        if not has_group_length and not self.options.allow_missing_meta_element_group_length:
            raise DicomError("MetaElementGroupLength tag not found or of the wrong type")

        if has_group_length:
            with self._limited(first.value[0]):
                while not self.raw.limit_exhausted():
                    elem = self.read_element(None, None)
                    meta[elem.tag] = elem
        else:
            logger.debug("proceeding without metadata group length")
            while True:
                try:
                    group_bytes = self.raw.peek(2)
                except EOFError:
                    raise DicomError(
                        "MetaElementGroupLength missing and header ended unexpectedly"
                    ) from None
                if int.from_bytes(group_bytes, "little") != METADATA_GROUP:
                    break
                elem = self.read_element(None, None)
                meta[elem.tag] = elem
        return meta

    def read_pixel_data(
        self,
        vl: int,
        dataset: Optional[Dataset],
        on_frame: FrameCallback = None,
    ) -> PixelDataInfo:
        """Read encapsulated or native PixelData according to the options."""
        if vl == VL_UNDEFINED_LENGTH:
            info = PixelDataInfo(is_encapsulated=True)
            # The first item is the basic offset table, which is not used.
            self.read_raw_item(True)
            while not self.raw.limit_exhausted():
                try:
                    data, end = self.read_raw_item(self.options.skip_pixel_data)
                except (DicomError, EOFError):
                    break
                if end:
                    break
                frame = Frame(
                    encapsulated=True,
                    encapsulated_data=EncapsulatedFrame(data if data is not None else b""),
                )
                if on_frame is not None:
                    on_frame(frame)
                info.frames.append(frame)
            info.intentionally_skipped = self.options.skip_pixel_data
            return info

        if self.options.skip_pixel_data:
            self.raw.skip(vl)
            return PixelDataInfo(intentionally_skipped=True)

        if self.options.skip_processing_pixel_data_value:
            return PixelDataInfo(
                intentionally_unprocessed=True,
                unprocessed_value_data=self.raw.read_bytes(vl),
            )

        if dataset is None:
            raise DicomError(
                "the Dataset context cannot be None in order to read native PixelData"
            )
        info, _ = self.read_native_frames(dataset, vl, on_frame)
        return info

    def read_native_frames(
        self,
        dataset: Dataset,
        vl: int,
        on_frame: FrameCallback = None,
    ) -> tuple[PixelDataInfo, int]:
        """Read native frames; return the pixel data and the bytes consumed."""
        return read_native_frames(
            self.raw,
            dataset,
            vl,
            self.options.allow_mismatch_pixel_data_length,
            on_frame,
        )

    def _check_item(self, element: Element) -> SequenceItem:
        if element.tag != ITEM or element.value_type() is not ValueType.SEQUENCE_ITEM:
            logger.warning("non item tag %s found in sequence", element.tag)
            raise DicomError("non item found in sequence")
        return element.value

    def read_sequence(self, vl: int) -> list[SequenceItem]:
        """Read the items of an SQ element."""
        items: list[SequenceItem] = []
        context = Dataset()
        if vl == VL_UNDEFINED_LENGTH:
            while True:
                sub = self.read_element(context, None)
                if sub.tag == SEQUENCE_DELIMITATION_ITEM:
                    break
                items.append(self._check_item(sub))
        else:
            with self._limited(vl):
                while not self.raw.limit_exhausted():
                    items.append(self._check_item(self.read_element(context, None)))
        return items

    def read_sequence_item(self, vl: int) -> SequenceItem:
        """Read the elements of one sequence item."""
        item = SequenceItem()
        context = Dataset(item.elements)
        if vl == VL_UNDEFINED_LENGTH:
            while True:
                sub = self.read_element(context, None)
                if sub.tag == ITEM_DELIMITATION_ITEM:
                    break
                item.elements[sub.tag] = sub
        else:
            with self._limited(vl):
                while not self.raw.limit_exhausted():
                    sub = self.read_element(context, None)
                    item.elements[sub.tag] = sub
        return item

    def read_bytes(self, vr: str, vl: int) -> bytes:
        """Read an OB, UN or OW value as bytes."""
        if vr in ("OB", "UN"):
            return self.raw.read_bytes(vl)
        if vr == "OW":
            if vl % 2:
                raise DicomError("vr of OW requires even value length")
            words = [self.raw.read_uint16() for _ in range(vl // 2)]
            return struct.pack(f"<{len(words)}H", *words)
        raise DicomError(f"unsupported VR: {vr}")

    def read_strings(self, vl: int) -> list[str]:
        """Read a backslash-separated string value."""
        text = self.raw.read_string(vl)
        if not all(char.isspace() for char in text):
            text = text.strip(" \0")
        return text.split("\\")

    def read_floats(self, vr: str, vl: int) -> list[float]:
        """Read an FL or FD value."""
        values: list[float] = []
        with self._limited(vl):
            while not self.raw.limit_exhausted():
                if vr == "FL":
                    values.append(_shortest_float32(self.raw.read_float32()))
                elif vr == "FD":
                    values.append(self.raw.read_float64())
                else:
                    raise DicomError("unable to parse float type")
        return values

    def read_date(self, vl: int) -> list[str]:
        """Read a DA value as a single trimmed string."""
        return [self.raw.read_string(vl).strip(" \0")]

    def read_ints(self, vr: str, vl: int) -> list[int]:
        """Read a US, UL, SS, SL or AT value."""
        readers = {
            "US": self.raw.read_uint16,
            "AT": self.raw.read_uint16,
            "UL": self.raw.read_uint32,
            "SL": self.raw.read_int32,
            "SS": self.raw.read_int16,
        }
        values: list[int] = []
        with self._limited(vl):
            while not self.raw.limit_exhausted():
                read = readers.get(vr)
                if read is None:
                    raise DicomError("unable to parse integer type")
                values.append(read())
        return values

    def read_element(
        self,
        dataset: Optional[Dataset] = None,
        on_frame: FrameCallback = None,
    ) -> Element:
        """Read the next element; dataset supplies context for native PixelData."""
        tag = self.read_tag()
        implicit = self.raw.implicit or tag == ITEM
        vr = self.read_vr(implicit, tag)
        vl = self.read_vl(implicit, tag, vr)
        try:
            value = self.read_value(tag, vr, vl, dataset, on_frame)
        except (DicomError, EOFError) as exc:
            logger.warning("error reading value for tag %s vr %s: %s", tag, vr, exc)
            raise
        return Element(tag=tag, vr=vr, value=value, value_length=vl)

    def read_raw_item(self, skip: bool) -> tuple[Optional[bytes], bool]:
        """Read one encapsulated item as raw bytes.

        Returns (data, end_of_items); data is None when skipped or not an item.
        """
        tag = self.read_tag()
        vr = self.read_vr(True, tag)
        vl = self.read_vl(True, tag, vr)

        if tag == SEQUENCE_DELIMITATION_ITEM:
            if vl != 0:
                logger.warning("SequenceDelimitationItem's VL != 0: %d", vl)
            return None, True
        if tag != ITEM:
            logger.warning("expected Item in pixel data but found tag %s", tag)
            return None, False
        if vl == VL_UNDEFINED_LENGTH:
            logger.warning("expected defined-length item in pixel data")
            return None, False
        if vr != "NA":
            raise DicomError(f"readRawItem: expected VR=NA, got VR={vr}")
        if skip:
            self.raw.skip(vl)
            return None, False
        return self.raw.read_bytes(vl), False

    def more_to_read(self) -> bool:
        """Whether any data remains under the current limit."""
        return not self.raw.limit_exhausted()