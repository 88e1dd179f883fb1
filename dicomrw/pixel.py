"""Decoding of native (uncompressed) PixelData into frames."""

from __future__ import annotations

import struct
from typing import Callable, Optional

from .binio import DicomReader
from .model import (
    BITS_ALLOCATED,
    COLUMNS,
    LITTLE_ENDIAN,
    NUMBER_OF_FRAMES,
    ROWS,
    SAMPLES_PER_PIXEL,
    Dataset,
    DicomError,
    ElementNotFoundError,
    EncapsulatedFrame,
    Frame,
    NativeFrame,
    PixelDataInfo,
    Tag,
)

FrameCallback = Optional[Callable[[Frame], None]]

_SAMPLE_CODES = {8: "B", 16: "H", 32: "I"}


class PixelDataLengthError(DicomError):
    """The PixelData value length does not match the image geometry."""


class UnsupportedBitsAllocatedError(DicomError):
    """The BitsAllocated value cannot be unpacked as native pixel data."""


def _int_value(dataset: Dataset, tag: Tag) -> int:
    element = dataset.find_element_by_tag(tag)
    try:
        return int(element.value[0])
    except (TypeError, ValueError, IndexError) as exc:
        raise DicomError(f"element {tag} does not hold an integer value") from exc


def _split(values: list[int], count: int, size: int) -> list[list[int]]:
    return [values[i * size:(i + 1) * size] for i in range(count)]


def unpack_single_bits(data: bytes, count: int) -> list[int]:
    """Expand count one-bit samples from data, most significant bit first."""
    if count % 8:
        raise DicomError(
            "when bitsAllocated is 1, the number of samples must be a multiple of 8"
        )
    needed = count // 8
    if len(data) < needed:
        raise DicomError(f"need {needed} bytes for {count} samples, got {len(data)}")
    return [(byte >> bit) & 1 for byte in data[:needed] for bit in range(7, -1, -1)]


def make_error_pixel_data(
    reader: DicomReader,
    vl: int,
    error: Exception,
    on_frame: FrameCallback = None,
) -> PixelDataInfo:
    """Read vl raw bytes as a single unparsed frame, recording the parse error."""
    try:
        data = reader.read_bytes(vl)
    except EOFError as exc:
        raise DicomError(f"makeErrorPixelData: read pixelData: {exc}") from exc
    frame = Frame(encapsulated_data=EncapsulatedFrame(data))
    if on_frame is not None:
        on_frame(frame)
    return PixelDataInfo(frames=[frame], parse_error=error)


def read_native_frames(
    reader: DicomReader,
    dataset: Dataset,
    vl: int,
    allow_mismatch: bool = False,
    on_frame: FrameCallback = None,
) -> tuple[PixelDataInfo, int]:
    """Read native frames using geometry from dataset; return (info, bytes read)."""
    rows = _int_value(dataset, ROWS)
    cols = _int_value(dataset, COLUMNS)
    try:
        n_frames = _int_value(dataset, NUMBER_OF_FRAMES)
    except ElementNotFoundError:
        n_frames = 1
    bits_allocated = _int_value(dataset, BITS_ALLOCATED)
    samples_per_pixel = _int_value(dataset, SAMPLES_PER_PIXEL)

    pixels_per_frame = rows * cols
    bytes_allocated = bits_allocated // 8
    if bits_allocated == 1:
        bytes_to_read = pixels_per_frame * samples_per_pixel // 8 * n_frames
    else:
        bytes_to_read = bytes_allocated * samples_per_pixel * pixels_per_frame * n_frames

    skip_padding = False
    if bytes_to_read != vl:
        if bytes_to_read == vl - 1 and vl % 2 == 0:
            skip_padding = True
        elif bytes_to_read == vl - 1:
            raise DicomError(
                f"vl={vl}: field length is not even, in violation of DICOM spec"
            )
        else:
            message = f"expected_vl={bytes_to_read} actual_vl={vl}"
            if not allow_mismatch:
                raise PixelDataLengthError(message)
            info = make_error_pixel_data(
                reader, vl, PixelDataLengthError(message), on_frame
            )
            return info, vl

    samples = pixels_per_frame * samples_per_pixel
    prefix = "<" if reader.byte_order == LITTLE_ENDIAN else ">"
    frames: list[Frame] = []
    for _ in range(n_frames):
        if bits_allocated == 1:
            try:
                raw = reader.read_bytes(samples // 8)
            except EOFError as exc:
                raise DicomError(f"could not read uint1 from input: {exc}") from exc
            flat = unpack_single_bits(raw, samples)
        else:
            code = _SAMPLE_CODES.get(bits_allocated)
            if code is None:
                if samples:
                    raise UnsupportedBitsAllocatedError(
                        f"bitsAllocated={bits_allocated}: unsupported BitsAllocated"
                    )
                flat = []
            else:
                try:
                    raw = reader.read_bytes(samples * bytes_allocated)
                except EOFError as exc:
                    raise DicomError(
                        f"could not read uint{bits_allocated} from input: {exc}"
                    ) from exc
                flat = list(struct.unpack(f"{prefix}{samples}{code}", raw))
        frame = Frame(
            encapsulated=False,
            native_data=NativeFrame(
                bits_per_sample=bits_allocated,
                rows=rows,
                cols=cols,
                data=_split(flat, pixels_per_frame, samples_per_pixel),
            ),
        )
        frames.append(frame)
        if on_frame is not None:
            on_frame(frame)

    if skip_padding:
        try:
            reader.skip(1)
        except EOFError as exc:
            raise DicomError(f"could not read padding byte: {exc}") from exc
        bytes_to_read += 1
    return PixelDataInfo(frames=frames, is_encapsulated=False), bytes_to_read