import io

import pytest

from dicomrw.binio import DicomReader, DicomWriter
from dicomrw.model import (
    BITS_ALLOCATED,
    COLUMNS,
    EXPLICIT_VR_LITTLE_ENDIAN,
    FILE_META_INFORMATION_GROUP_LENGTH,
    IMPLICIT_VR_LITTLE_ENDIAN,
    LITTLE_ENDIAN,
    MEDIA_STORAGE_SOP_CLASS_UID,
    MEDIA_STORAGE_SOP_INSTANCE_UID,
    NUMBER_OF_FRAMES,
    PATIENT_NAME,
    PIXEL_DATA,
    ROWS,
    SAMPLES_PER_PIXEL,
    TRANSFER_SYNTAX_UID,
    VL_UNDEFINED_LENGTH,
    Dataset,
    DicomError,
    Element,
    ElementNotFoundError,
    EncapsulatedFrame,
    Frame,
    NativeFrame,
    PixelDataInfo,
    Tag,
    ValueType,
    make_sequence_element,
    new_element,
)
from dicomrw.reader import ElementReader, ParseOptions
from dicomrw.writer import (
    WriteOptions,
    Writer,
    verify_value_type,
    verify_vr_or_default,
    write,
    write_bytes,
    write_floats,
    write_ints,
    write_pixel_data,
    write_strings,
)

FLOATING_POINT_VALUE = Tag(0x0040, 0xA161)
DIMENSION_INDEX_POINTER = Tag(0x0020, 0x9165)
RED_PALETTE = Tag(0x0028, 0x1201)
SELECTOR_SL_VALUE = Tag(0x0072, 0x007C)
ADD_OTHER_SEQUENCE = Tag(0x0046, 0x0102)
ANATOMIC_REGION_SEQUENCE = Tag(0x0008, 0x2218)


def _parse(data, options=None):
    reader = ElementReader(data, options)
    meta = reader.read_header()
    dataset = Dataset(dict(meta))
    reader.raw.set_transfer_syntax(*Dataset(dict(meta)).transfer_syntax())
    while reader.more_to_read():
        element = reader.read_element(dataset)
        dataset.elements[element.tag] = element
    return dataset


def _values(dataset):
    return {
        t: e.value
        for t, e in dataset.elements.items()
        if t != FILE_META_INFORMATION_GROUP_LENGTH
    }


def _base(ts=IMPLICIT_VR_LITTLE_ENDIAN):
    return {
        MEDIA_STORAGE_SOP_CLASS_UID: new_element(
            MEDIA_STORAGE_SOP_CLASS_UID, ["1.2.840.10008.5.1.4.1.1.1.2"]
        ),
        MEDIA_STORAGE_SOP_INSTANCE_UID: new_element(
            MEDIA_STORAGE_SOP_INSTANCE_UID, ["1.2.3.4.5.6.7"]
        ),
        TRANSFER_SYNTAX_UID: new_element(TRANSFER_SYNTAX_UID, [ts]),
    }


def _sequence_items():
    item = [
        Element(tag=PATIENT_NAME, vr="PN", value=["Bob", "Jones"]),
        Element(tag=ROWS, vr="US", value=[100]),
    ]
    return [item, list(item)]


def _nested_items():
    inner = make_sequence_element(
        ANATOMIC_REGION_SEQUENCE,
        [[Element(tag=PATIENT_NAME, vr="PN", value=["Bob", "Jones"])]],
    )
    return [[Element(tag=PATIENT_NAME, vr="PN", value=["Bob", "Jones"]), inner]]


def _native(bits, data_frames, frames_count, samples):
    return {
        ROWS: new_element(ROWS, [2]),
        COLUMNS: new_element(COLUMNS, [2]),
        BITS_ALLOCATED: new_element(BITS_ALLOCATED, [bits]),
        NUMBER_OF_FRAMES: new_element(NUMBER_OF_FRAMES, [str(frames_count)]),
        SAMPLES_PER_PIXEL: new_element(SAMPLES_PER_PIXEL, [samples]),
        PIXEL_DATA: new_element(
            PIXEL_DATA,
            PixelDataInfo(
                frames=[
                    Frame(native_data=NativeFrame(bits, 2, 2, data)) for data in data_frames
                ]
            ),
        ),
    }


def _encapsulated(payloads):
    element = new_element(
        PIXEL_DATA,
        PixelDataInfo(
            is_encapsulated=True,
            frames=[
                Frame(encapsulated=True, encapsulated_data=EncapsulatedFrame(p))
                for p in payloads
            ],
        ),
    )
    element.value_length = VL_UNDEFINED_LENGTH
    return element


ROUND_TRIP_CASES = [
    (
        "basic types",
        {
            PATIENT_NAME: new_element(PATIENT_NAME, ["Bob", "Jones"]),
            ROWS: new_element(ROWS, [128]),
            FLOATING_POINT_VALUE: new_element(FLOATING_POINT_VALUE, [128.10]),
            DIMENSION_INDEX_POINTER: new_element(DIMENSION_INDEX_POINTER, [32, 36950]),
            RED_PALETTE: new_element(RED_PALETTE, b"\x01\x02\x03\x04"),
            SELECTOR_SL_VALUE: new_element(SELECTOR_SL_VALUE, [-20]),
            Tag(0x0019, 0x1027): Element(
                tag=Tag(0x0019, 0x1027), vr="UN", value=b"\x01\x02\x03\x04", value_length=4
            ),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "private tag",
        {Tag(0x0003, 0x0010): Element(tag=Tag(0x0003, 0x0010), vr="ST", value=["some data"])},
        EXPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "sequence",
        {
            PATIENT_NAME: new_element(PATIENT_NAME, ["Bob", "Jones"]),
            ADD_OTHER_SEQUENCE: make_sequence_element(ADD_OTHER_SEQUENCE, _sequence_items()),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "sequence skip vr verification",
        {
            PATIENT_NAME: new_element(PATIENT_NAME, ["Bob", "Jones"]),
            ADD_OTHER_SEQUENCE: make_sequence_element(ADD_OTHER_SEQUENCE, _sequence_items()),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        WriteOptions(skip_vr_verification=True),
        None,
    ),
    (
        "nested sequences",
        {ADD_OTHER_SEQUENCE: make_sequence_element(ADD_OTHER_SEQUENCE, _nested_items())},
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "nested sequences skip vr verification",
        {ADD_OTHER_SEQUENCE: make_sequence_element(ADD_OTHER_SEQUENCE, _nested_items())},
        IMPLICIT_VR_LITTLE_ENDIAN,
        WriteOptions(skip_vr_verification=True),
        None,
    ),
    (
        "native 8bit",
        {
            **_native(8, [[[1], [2], [3], [4]]], 1, 1),
            FLOATING_POINT_VALUE: new_element(FLOATING_POINT_VALUE, [128.10]),
            DIMENSION_INDEX_POINTER: new_element(DIMENSION_INDEX_POINTER, [32, 36950]),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    ("native 16bit", _native(16, [[[1], [2], [3], [4]]], 1, 1), IMPLICIT_VR_LITTLE_ENDIAN, None, None),
    ("native 32bit", _native(32, [[[1], [2], [3], [4]]], 1, 1), IMPLICIT_VR_LITTLE_ENDIAN, None, None),
    (
        "native 2 samples 2 frames",
        _native(
            32,
            [[[1, 1], [2, 2], [3, 3], [4, 4]], [[5, 1], [2, 2], [3, 3], [4, 5]]],
            2,
            2,
        ),
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "encapsulated",
        {
            BITS_ALLOCATED: new_element(BITS_ALLOCATED, [8]),
            PIXEL_DATA: _encapsulated([b"\x01\x02\x03\x04"]),
            FLOATING_POINT_VALUE: new_element(FLOATING_POINT_VALUE, [128.10]),
            DIMENSION_INDEX_POINTER: new_element(DIMENSION_INDEX_POINTER, [32, 36950]),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "encapsulated multiframe",
        {
            BITS_ALLOCATED: new_element(BITS_ALLOCATED, [8]),
            PIXEL_DATA: _encapsulated([b"\x01\x02\x03\x04", b"\x01\x02\x03\x08"]),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        None,
    ),
    (
        "unprocessed",
        {
            BITS_ALLOCATED: new_element(BITS_ALLOCATED, [8]),
            PIXEL_DATA: new_element(
                PIXEL_DATA,
                PixelDataInfo(
                    intentionally_unprocessed=True,
                    unprocessed_value_data=b"\x01\x02\x03\x04",
                ),
            ),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        ParseOptions(skip_processing_pixel_data_value=True),
    ),
    (
        "native skipped",
        {
            BITS_ALLOCATED: new_element(BITS_ALLOCATED, [8]),
            FLOATING_POINT_VALUE: new_element(FLOATING_POINT_VALUE, [128.10]),
            PIXEL_DATA: new_element(PIXEL_DATA, PixelDataInfo(intentionally_skipped=True)),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        ParseOptions(skip_pixel_data=True),
    ),
    (
        "encapsulated skipped",
        {
            BITS_ALLOCATED: new_element(BITS_ALLOCATED, [8]),
            PIXEL_DATA: _encapsulated([]),
        },
        IMPLICIT_VR_LITTLE_ENDIAN,
        None,
        ParseOptions(skip_pixel_data=True),
    ),
]

# The skipped encapsulated case reads back as skipped.
ROUND_TRIP_CASES[-1][1][PIXEL_DATA].value.intentionally_skipped = True


@pytest.mark.parametrize(
    "elements, ts, write_options, parse_options",
    [case[1:] for case in ROUND_TRIP_CASES],
    ids=[case[0] for case in ROUND_TRIP_CASES],
)
def test_write_round_trip(elements, ts, write_options, parse_options):
    dataset = Dataset({**_base(ts), **elements})
    out = io.BytesIO()
    write(out, dataset, write_options)
    parsed = _parse(out.getvalue(), parse_options)
    assert _values(parsed) == _values(dataset)


def test_write_without_transfer_syntax_raises():
    elements = _base()
    del elements[TRANSFER_SYNTAX_UID]
    elements[ROWS] = new_element(ROWS, [128])
    with pytest.raises(ElementNotFoundError):
        write(io.BytesIO(), Dataset(elements))


def test_write_default_missing_transfer_syntax():
    elements = _base()
    del elements[TRANSFER_SYNTAX_UID]
    elements[PATIENT_NAME] = new_element(PATIENT_NAME, ["Bob", "Jones"])
    elements[ROWS] = new_element(ROWS, [128])
    elements[FLOATING_POINT_VALUE] = new_element(FLOATING_POINT_VALUE, [128.10])
    out = io.BytesIO()
    write(out, Dataset(elements), WriteOptions(default_missing_transfer_syntax=True))
    parsed = _parse(out.getvalue())
    expected = {t: e.value for t, e in elements.items()}
    expected[TRANSFER_SYNTAX_UID] = [IMPLICIT_VR_LITTLE_ENDIAN]
    assert _values(parsed) == expected


def test_write_file_header_layout():
    out = io.BytesIO()
    write(out, Dataset(_base()))
    data = out.getvalue()
    assert data[:128] == bytes(128)
    assert data[128:132] == b"DICM"
    assert data[132:140] == b"\x02\x00\x00\x00UL\x04\x00"


@pytest.mark.parametrize(
    "tag, in_vr, want_vr, options",
    [
        (FILE_META_INFORMATION_GROUP_LENGTH, "", "UL", None),
        (Tag(0x9999, 0x9999), "", "UN", None),
        (Tag(0x0003, 0x0010), "DA", "DA", None),
        (PATIENT_NAME, "DS", "DS", WriteOptions(skip_vr_verification=True)),
    ],
)
def test_verify_vr_or_default(tag, in_vr, want_vr, options):
    assert verify_vr_or_default(tag, in_vr, options) == want_vr


def test_verify_vr_wrong_vr_raises():
    with pytest.raises(DicomError):
        verify_vr_or_default(FILE_META_INFORMATION_GROUP_LENGTH, "OB", WriteOptions())


def test_verify_value_type_valid():
    verify_value_type(FILE_META_INFORMATION_GROUP_LENGTH, ValueType.INTS, "UL")
    with pytest.raises(DicomError):
        verify_value_type(PIXEL_DATA, ValueType.BYTES, "OW")


@pytest.mark.parametrize(
    "value_type, vr",
    [(ValueType.INTS, "NA"), (ValueType.STRINGS, "UL")],
)
def test_verify_value_type_invalid(value_type, vr):
    with pytest.raises(DicomError):
        verify_value_type(FILE_META_INFORMATION_GROUP_LENGTH, value_type, vr)


def _buffer_writer():
    buf = io.BytesIO()
    return buf, DicomWriter(buf, LITTLE_ENDIAN, False)


def test_write_floats_float64():
    buf, w = _buffer_writer()
    write_floats(w, [20.1019, 21.212], "FD")
    assert buf.getvalue() == bytes(
        [0x60, 0x76, 0x4F, 0x1E, 0x16, 0x1A, 0x34, 0x40,
         0x83, 0xC0, 0xCA, 0xA1, 0x45, 0x36, 0x35, 0x40]
    )


def test_write_floats_float32():
    buf, w = _buffer_writer()
    write_floats(w, [1.0], "FL")
    assert buf.getvalue() == b"\x00\x00\x80\x3f"


@pytest.mark.parametrize("vr", ["OW", "OB"])
def test_write_bytes_even(vr):
    buf, w = _buffer_writer()
    write_bytes(w, b"\x01\x02\x03\x04", vr)
    assert buf.getvalue() == b"\x01\x02\x03\x04"


def test_write_bytes_ob_odd_is_padded():
    buf, w = _buffer_writer()
    write_bytes(w, b"\x01\x02\x03", "OB")
    assert buf.getvalue() == b"\x01\x02\x03\x00"


def test_write_bytes_ow_odd_raises():
    _, w = _buffer_writer()
    with pytest.raises(DicomError):
        write_bytes(w, b"\x01\x02\x03", "OW")


def test_write_bytes_wrong_vr_raises():
    _, w = _buffer_writer()
    with pytest.raises(DicomError):
        write_bytes(w, b"\x01\x02", "US")


def test_write_strings_padding():
    buf, w = _buffer_writer()
    write_strings(w, ["Bob", "Jones"], "PN")
    assert buf.getvalue() == b"Bob\\Jones "
    buf, w = _buffer_writer()
    write_strings(w, ["1.2.3"], "UI")
    assert buf.getvalue() == b"1.2.3\x00"


def test_write_ints():
    buf, w = _buffer_writer()
    write_ints(w, [1, -1], "SS")
    write_ints(w, [2], "UL")
    assert buf.getvalue() == b"\x01\x00\xff\xff\x02\x00\x00\x00"


def test_write_ints_wrong_vr_raises():
    _, w = _buffer_writer()
    with pytest.raises(DicomError):
        write_ints(w, [1], "FD")


def test_write_pixel_data_encapsulated_bytes():
    buf, w = _buffer_writer()
    info = PixelDataInfo(
        is_encapsulated=True,
        frames=[Frame(encapsulated=True, encapsulated_data=EncapsulatedFrame(b"\x01\x02\x03\x04"))],
    )
    write_pixel_data(w, info, VL_UNDEFINED_LENGTH)
    assert buf.getvalue() == (
        b"\xfe\xff\x00\xe0\x00\x00\x00\x00"
        b"\xfe\xff\x00\xe0\x04\x00\x00\x00\x01\x02\x03\x04"
        b"\xfe\xff\xdd\xe0\x00\x00\x00\x00"
    )


def test_write_pixel_data_native_16bit():
    buf, w = _buffer_writer()
    info = PixelDataInfo(frames=[Frame(native_data=NativeFrame(16, 1, 2, [[1], [2]]))])
    write_pixel_data(w, info, 4)
    assert buf.getvalue() == b"\x01\x00\x02\x00"


def test_write_pixel_data_skipped_writes_nothing():
    buf, w = _buffer_writer()
    write_pixel_data(w, PixelDataInfo(intentionally_skipped=True), 0)
    assert buf.getvalue() == b""


def test_write_pixel_data_unsupported_bits_raises():
    _, w = _buffer_writer()
    info = PixelDataInfo(frames=[Frame(native_data=NativeFrame(24, 1, 1, [[1]]))])
    with pytest.raises(DicomError):
        write_pixel_data(w, info, 3)


def test_write_element_round_trip():
    elements = [
        new_element(MEDIA_STORAGE_SOP_CLASS_UID, ["1.2.840.10008.5.1.4.1.1.1.2"]),
        new_element(MEDIA_STORAGE_SOP_INSTANCE_UID, ["1.2.3.4.5.6.7"]),
        new_element(TRANSFER_SYNTAX_UID, [IMPLICIT_VR_LITTLE_ENDIAN]),
        new_element(PATIENT_NAME, ["Bob", "Jones"]),
        new_element(DIMENSION_INDEX_POINTER, [32, 36950]),
        new_element(ROWS, [128]),
        new_element(RED_PALETTE, b"\x01\x02\x03\x04"),
        new_element(FLOATING_POINT_VALUE, [128.10]),
    ]
    out = io.BytesIO()
    writer = Writer(out)
    writer.set_transfer_syntax(LITTLE_ENDIAN, True)
    for element in elements:
        writer.write_element(element)
    reader = ElementReader(DicomReader(out.getvalue(), implicit=True))
    read = [reader.read_element(Dataset()) for _ in elements]
    assert [(e.tag, e.value) for e in read] == [(e.tag, e.value) for e in elements]
    assert not reader.more_to_read()


def test_write_element_odd_length_raises():
    writer = Writer(io.BytesIO())
    info = PixelDataInfo(frames=[Frame(native_data=NativeFrame(8, 1, 1, [[7]]))])
    with pytest.raises(DicomError):
        writer.write_element(new_element(PIXEL_DATA, info))


def test_write_element_undefined_length_string_raises():
    writer = Writer(io.BytesIO())
    element = Element(tag=PATIENT_NAME, value=["a"], value_length=VL_UNDEFINED_LENGTH)
    with pytest.raises(DicomError):
        writer.write_element(element)


def test_write_element_value_type_mismatch_raises():
    writer = Writer(io.BytesIO())
    with pytest.raises(DicomError):
        writer.write_element(new_element(ROWS, ["x"]))


def test_write_element_explicit_header():
    out = io.BytesIO()
    Writer(out).write_element(new_element(ROWS, [5]))
    assert out.getvalue() == b"\x28\x00\x10\x00US\x02\x00\x05\x00"