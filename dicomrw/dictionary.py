"""A small DICOM data dictionary and value-representation classification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .model import (
    BITS_ALLOCATED,
    COLUMNS,
    FILE_META_INFORMATION_GROUP_LENGTH,
    FILE_META_INFORMATION_VERSION,
    IMPLEMENTATION_CLASS_UID,
    IMPLEMENTATION_VERSION_NAME,
    ITEM,
    ITEM_DELIMITATION_ITEM,
    MEDIA_STORAGE_SOP_CLASS_UID,
    MEDIA_STORAGE_SOP_INSTANCE_UID,
    NUMBER_OF_FRAMES,
    PATIENT_NAME,
    PIXEL_DATA,
    ROWS,
    SAMPLES_PER_PIXEL,
    SEQUENCE_DELIMITATION_ITEM,
    SOP_INSTANCE_UID,
    TRANSFER_SYNTAX_UID,
    Tag,
)

UNKNOWN_VR = "UN"

# VRs whose explicit encoding carries two reserved bytes and a 32-bit length.
_LONG_LENGTH_VRS = frozenset(
    {"NA", "OB", "OD", "OF", "OL", "OW", "SQ", "UN", "UC", "UR", "UT"}
)


@dataclass(frozen=True)
class TagInfo:
    """Dictionary entry for a tag: its VR, keyword and multiplicity."""

    tag: Tag
    vr: str
    name: str
    vm: str = "1"


class VRKind(Enum):
    """How the value of an element with a given VR is decoded."""

    STRING_LIST = "string_list"
    STRING = "string"
    BYTES = "bytes"
    UINT16_LIST = "uint16_list"
    UINT32_LIST = "uint32_list"
    INT16_LIST = "int16_list"
    INT32_LIST = "int32_list"
    FLOAT32_LIST = "float32_list"
    FLOAT64_LIST = "float64_list"
    SEQUENCE = "sequence"
    ITEM = "item"
    TAG_LIST = "tag_list"
    DATE = "date"
    PIXEL_DATA = "pixel_data"


_VR_KINDS = {
    "DA": VRKind.DATE,
    "AT": VRKind.TAG_LIST,
    "OW": VRKind.BYTES,
    "OB": VRKind.BYTES,
    "UN": VRKind.BYTES,
    "LT": VRKind.STRING,
    "UT": VRKind.STRING,
    "UL": VRKind.UINT32_LIST,
    "SL": VRKind.INT32_LIST,
    "US": VRKind.UINT16_LIST,
    "SS": VRKind.INT16_LIST,
    "FL": VRKind.FLOAT32_LIST,
    "FD": VRKind.FLOAT64_LIST,
    "SQ": VRKind.SEQUENCE,
}


def _entries() -> dict[Tag, TagInfo]:
    rows = [
        (FILE_META_INFORMATION_GROUP_LENGTH, "UL", "FileMetaInformationGroupLength", "1"),
        (FILE_META_INFORMATION_VERSION, "OB", "FileMetaInformationVersion", "1"),
        (MEDIA_STORAGE_SOP_CLASS_UID, "UI", "MediaStorageSOPClassUID", "1"),
        (MEDIA_STORAGE_SOP_INSTANCE_UID, "UI", "MediaStorageSOPInstanceUID", "1"),
        (TRANSFER_SYNTAX_UID, "UI", "TransferSyntaxUID", "1"),
        (IMPLEMENTATION_CLASS_UID, "UI", "ImplementationClassUID", "1"),
        (IMPLEMENTATION_VERSION_NAME, "SH", "ImplementationVersionName", "1"),
        (Tag(0x0002, 0x0016), "AE", "SourceApplicationEntityTitle", "1"),
        (Tag(0x0008, 0x0005), "CS", "SpecificCharacterSet", "1-n"),
        (Tag(0x0008, 0x0008), "CS", "ImageType", "2-n"),
        (Tag(0x0008, 0x0012), "DA", "InstanceCreationDate", "1"),
        (Tag(0x0008, 0x0013), "TM", "InstanceCreationTime", "1"),
        (Tag(0x0008, 0x0016), "UI", "SOPClassUID", "1"),
        (SOP_INSTANCE_UID, "UI", "SOPInstanceUID", "1"),
        (Tag(0x0008, 0x0020), "DA", "StudyDate", "1"),
        (Tag(0x0008, 0x0021), "DA", "SeriesDate", "1"),
        (Tag(0x0008, 0x0022), "DA", "AcquisitionDate", "1"),
        (Tag(0x0008, 0x0023), "DA", "ContentDate", "1"),
        (Tag(0x0008, 0x0030), "TM", "StudyTime", "1"),
        (Tag(0x0008, 0x0031), "TM", "SeriesTime", "1"),
        (Tag(0x0008, 0x0033), "TM", "ContentTime", "1"),
        (Tag(0x0008, 0x0050), "SH", "AccessionNumber", "1"),
        (Tag(0x0008, 0x0060), "CS", "Modality", "1"),
        (Tag(0x0008, 0x0070), "LO", "Manufacturer", "1"),
        (Tag(0x0008, 0x0080), "LO", "InstitutionName", "1"),
        (Tag(0x0008, 0x0090), "PN", "ReferringPhysicianName", "1"),
        (Tag(0x0008, 0x1030), "LO", "StudyDescription", "1"),
        (Tag(0x0008, 0x103E), "LO", "SeriesDescription", "1"),
        (Tag(0x0008, 0x2218), "SQ", "AnatomicRegionSequence", "1"),
        (PATIENT_NAME, "PN", "PatientName", "1"),
        (Tag(0x0010, 0x0020), "LO", "PatientID", "1"),
        (Tag(0x0010, 0x0030), "DA", "PatientBirthDate", "1"),
        (Tag(0x0010, 0x0040), "CS", "PatientSex", "1"),
        (Tag(0x0018, 0x0050), "DS", "SliceThickness", "1"),
        (Tag(0x0020, 0x000D), "UI", "StudyInstanceUID", "1"),
        (Tag(0x0020, 0x000E), "UI", "SeriesInstanceUID", "1"),
        (Tag(0x0020, 0x0010), "SH", "StudyID", "1"),
        (Tag(0x0020, 0x0011), "IS", "SeriesNumber", "1"),
        (Tag(0x0020, 0x0013), "IS", "InstanceNumber", "1"),
        (Tag(0x0020, 0x0032), "DS", "ImagePositionPatient", "3"),
        (Tag(0x0020, 0x0037), "DS", "ImageOrientationPatient", "6"),
        (Tag(0x0020, 0x0052), "UI", "FrameOfReferenceUID", "1"),
        (Tag(0x0020, 0x9165), "AT", "DimensionIndexPointer", "1"),
        (SAMPLES_PER_PIXEL, "US", "SamplesPerPixel", "1"),
        (Tag(0x0028, 0x0004), "CS", "PhotometricInterpretation", "1"),
        (Tag(0x0028, 0x0006), "US", "PlanarConfiguration", "1"),
        (NUMBER_OF_FRAMES, "IS", "NumberOfFrames", "1"),
        (ROWS, "US", "Rows", "1"),
        (COLUMNS, "US", "Columns", "1"),
        (Tag(0x0028, 0x0030), "DS", "PixelSpacing", "2"),
        (BITS_ALLOCATED, "US", "BitsAllocated", "1"),
        (Tag(0x0028, 0x0101), "US", "BitsStored", "1"),
        (Tag(0x0028, 0x0102), "US", "HighBit", "1"),
        (Tag(0x0028, 0x0103), "US", "PixelRepresentation", "1"),
        (Tag(0x0028, 0x1050), "DS", "WindowCenter", "1-n"),
        (Tag(0x0028, 0x1051), "DS", "WindowWidth", "1-n"),
        (Tag(0x0028, 0x1052), "DS", "RescaleIntercept", "1"),
        (Tag(0x0028, 0x1053), "DS", "RescaleSlope", "1"),
        (Tag(0x0028, 0x1201), "OW", "RedPaletteColorLookupTableData", "1"),
        (Tag(0x0028, 0x1202), "OW", "GreenPaletteColorLookupTableData", "1"),
        (Tag(0x0028, 0x1203), "OW", "BluePaletteColorLookupTableData", "1"),
        (Tag(0x0040, 0xA161), "FD", "FloatingPointValue", "1-n"),
        (Tag(0x0046, 0x0102), "SQ", "AddOtherSequence", "1"),
        (Tag(0x0072, 0x007C), "SL", "SelectorSLValue", "1-n"),
        (PIXEL_DATA, "OW", "PixelData", "1"),
        (ITEM, "NA", "Item", "1"),
        (ITEM_DELIMITATION_ITEM, "NA", "ItemDelimitationItem", "1"),
        (SEQUENCE_DELIMITATION_ITEM, "NA", "SequenceDelimitationItem", "1"),
    ]
    return {tag: TagInfo(tag, vr, name, vm) for tag, vr, name, vm in rows}


_DICTIONARY = _entries()


def find(tag: Tag) -> TagInfo:
    """Look up a tag in the dictionary; raise KeyError if it is unknown.

    Any group-length tag (gggg,0000) is known, with VR UL.
    """
    info = _DICTIONARY.get(tag)
    if info is not None:
        return info
    if tag.element == 0x0000:
        return TagInfo(tag, "UL", "GenericGroupLength", "1")
    raise KeyError(f"tag {tag} not found in dictionary")


def vr_kind(tag: Tag, vr: str) -> VRKind:
    """Classify how a value with this tag and VR is decoded."""
    if tag == ITEM:
        return VRKind.ITEM
    if tag == PIXEL_DATA:
        return VRKind.PIXEL_DATA
    return _VR_KINDS.get(vr, VRKind.STRING_LIST)


def has_long_length(vr: str) -> bool:
    """Whether explicit encoding of this VR uses a reserved field and a 32-bit length."""
    return vr in _LONG_LENGTH_VRS