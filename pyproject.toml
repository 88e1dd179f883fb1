[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dicomrw"
version = "0.1.0"
description = "Read and write DICOM elements, sequences and pixel data in pure Python"
requires-python = ">=3.10"
dependencies = []
keywords = ["dicom", "medical imaging", "parser", "writer", "pixel data"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Healthcare Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Medical Science Apps.",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dicomrw"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
