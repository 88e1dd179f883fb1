# dicomrw

A small, dependency-free library for reading and writing DICOM data:
tags, value representations, strings, numbers, sequences and both native
and encapsulated pixel data.

## Modules

- `dicomrw.model`: `Tag`, `Element`, `Dataset`, `SequenceItem`,
  `PixelDataInfo`, `Frame`, `NativeFrame`, `EncapsulatedFrame`, `ValueType`,
  the helpers `new_element` and `make_sequence_element`, and the errors
  `DicomError` and `ElementNotFoundError`.
- `dicomrw.dictionary`: a small data dictionary (`find`, `TagInfo`) and VR
  classification (`vr_kind`, `VRKind`, `has_long_length`).
- `dicomrw.binio`: `DicomReader` and `DicomWriter`, typed binary I/O in a
  chosen byte order; the reader keeps a stack of read limits.
- `dicomrw.pixel`: `read_native_frames`, `unpack_single_bits` and
  `make_error_pixel_data`.
- `dicomrw.reader`: `ElementReader` and `ParseOptions`.
- `dicomrw.writer`: `Writer`, `write`, `WriteOptions` and the value encoders
  `write_strings`, `write_bytes`, `write_ints`, `write_floats` and
  `write_pixel_data`.

## Building a dataset and writing it

```python
import io

from dicomrw.model import Dataset, Tag, new_element
from dicomrw.writer import WriteOptions, write

elements = [
    new_element(Tag(0x0002, 0x0002), ["1.2.840.10008.5.1.4.1.1.1.2"]),
    new_element(Tag(0x0002, 0x0003), ["1.2.3.4.5.6.7"]),
    new_element(Tag(0x0002, 0x0010), ["1.2.840.10008.1.2"]),
    new_element(Tag(0x0010, 0x0010), ["Bob", "Jones"]),
    new_element(Tag(0x0028, 0x0010), [128]),
]
dataset = Dataset({element.tag: element for element in elements})

out = io.BytesIO()
write(out, dataset, WriteOptions())
```

An element built without a VR gets its VR from the data dictionary when it
is written; a tag the dictionary does not know is written as `UN`.
`WriteOptions` controls VR verification, value-type verification and whether
a missing transfer syntax falls back to implicit VR little endian (without
that option, a dataset lacking TransferSyntaxUID raises
`ElementNotFoundError`). Elements are written in ascending tag order.

## Reading it back

```python
from dicomrw.model import Dataset
from dicomrw.reader import ElementReader, ParseOptions

reader = ElementReader(io.BytesIO(out.getvalue()), ParseOptions())
parsed = Dataset(reader.read_header())

byte_order, implicit = parsed.transfer_syntax()
reader.raw.set_transfer_syntax(byte_order, implicit)
while reader.more_to_read():
    element = reader.read_element(parsed)
    parsed.elements[element.tag] = element
```

`read_header` checks the `DICM` magic word after the 128-byte preamble and
returns the group 0002 elements. `read_element` reads one element at a time;
the dataset passed to it supplies Rows, Columns, NumberOfFrames,
BitsAllocated and SamplesPerPixel for native pixel data. A callback passed as
`on_frame` is called with each frame as it is read.

`ParseOptions` lets you skip pixel data, keep it unprocessed as raw bytes,
tolerate a missing file meta group length, or accept pixel data whose length
does not match the image attributes (the data is then kept as one raw frame
and the error is recorded in `PixelDataInfo.parse_error`).

## Pixel data

Native pixel data is read into `Frame` objects that hold `NativeFrame`
samples, one list per pixel; 1, 8, 16 and 32 bits allocated are supported.
Encapsulated pixel data holds each fragment as raw bytes in an
`EncapsulatedFrame`; the basic offset table is skipped when reading. Both
kinds come back in a `PixelDataInfo`, and `write_pixel_data` writes them out
again (native samples of 8, 16 or 32 bits).

## Errors

Every parsing or encoding failure raises a subclass of
`dicomrw.model.DicomError`; running out of data raises `EOFError`.
`ElementNotFoundError` means a required element is missing,
`dicomrw.pixel.PixelDataLengthError` means the pixel data length does not
match Rows, Columns, frames and bits allocated, and
`dicomrw.pixel.UnsupportedBitsAllocatedError` means the bits allocated
cannot be unpacked.

## What it does not do

- There is no command-line tool and no single call that parses a whole file;
  reading is done element by element with `ElementReader`, as shown above.
- Compressed frames are not decoded; they stay as raw bytes.
- Deflated transfer syntaxes are not inflated.
- The data dictionary covers only a small set of common tags. With implicit
  VR, any other tag is read with VR `UN` as raw bytes.