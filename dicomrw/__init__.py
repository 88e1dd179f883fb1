"""Reading and writing of DICOM elements, datasets, sequences and pixel data."""

__version__ = "0.1.0"
__all__ = ["binio", "dictionary", "model", "pixel", "reader", "writer"]