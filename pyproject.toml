[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dionysos"
version = "0.1.0"
description = "Build diosfs filesystem images and model a kernel's physical memory layout"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "mkfs", "diosfs", "buddy-allocator", "elf", "paging"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mkdiosfs = "dionysos.mkfs:main"

[tool.hatch.build.targets.wheel]
packages = ["dionysos"]

[tool.pytest.ini_options]
addopts = "-ra"
