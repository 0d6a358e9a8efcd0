"""Command-line tool that builds a diosfs image with the default directory tree."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from pathlib import Path

from .image import DiosfsImage
from .layout import DiosfsError, Inode, InodeType

MIN_SIZE_GB = 1
MAX_SIZE_GB = 8
FILES_FLAG = "--f"

DEFAULT_DIRECTORIES = ("bin", "etc", "home", "root", "mnt", "var")
FILES_DIRECTORY = "home"

USAGE = (
    "Usage: mkdiosfs name.img size-gigs\n"
    f"You can add files via: mkdiosfs name.img size-gigs {FILES_FLAG} "
    "file_to_add other_file_to_add etc"
)


def parse_size(text: str) -> int:
    """Parse an image size in whole gigabytes, which must lie between 1 and 8."""
    digits = text.lstrip()
    if digits.startswith("+"):
        digits = digits[1:]
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"cannot convert {text!r} to a size")
    size = int(digits)
    if size > MAX_SIZE_GB:
        raise ValueError(
            f"this tool does not support images above {MAX_SIZE_GB}GB, "
            f"pick a size between {MIN_SIZE_GB} and {MAX_SIZE_GB} GB"
        )
    if size < MIN_SIZE_GB:
        raise ValueError(f"image size must be at least {MIN_SIZE_GB} GB")
    return size


def _image_name(path: str) -> str:
    """The name a host file gets in the image: everything after the first slash."""
    head, slash, rest = path.partition("/")
    return rest if slash else head


def build_image(image: DiosfsImage, files: Iterable[str | Path] = ()) -> Inode:
    """Create the root and default directories, then copy ``files`` into home.

    Returns the root directory inode.
    """
    root = image.create_root()
    created = {
        name: image.create(root, name, InodeType.DIRECTORY)
        for name in DEFAULT_DIRECTORIES
    }
    home = image.read_inode(created[FILES_DIRECTORY])
    for path in files:
        data = Path(path).read_bytes()
        number = image.create(home, _image_name(str(path)), InodeType.REG_FILE)
        image.write_bytes(image.read_inode(number), data, 0)
    return image.read_inode(root.inode_number)


def main(argv: list[str] | None = None) -> int:
    """Build a diosfs image file; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        print(USAGE)
        return 1
    if len(args) > 2 and args[2] != FILES_FLAG:
        print(
            "Invalid optional argument format, to add files append "
            f"{FILES_FLAG} path/to/file/one path/to/file/two etc"
        )
        return 1

    output, size_text, files = args[0], args[1], args[3:]
    try:
        gigabytes = parse_size(size_text)
    except ValueError as exc:
        print(f"Error converting size: {exc}")
        return 1

    image = DiosfsImage.from_gigabytes(gigabytes)
    layout = image.layout
    print(
        f"Total_inodes :{layout.total_inodes}, "
        f"Total data blocks :{layout.total_data_blocks}, "
        f"Total block bitmap blocks :{layout.total_block_bitmap_blocks}, "
        f"Total inode bitmap blocks :{layout.total_inode_bitmap_blocks}"
    )

    try:
        build_image(image, files)
    except OSError as exc:
        print(
            f"Error opening file {exc.filename}. "
            "Image on disk will not include any of the extra files."
        )
        return 1
    except DiosfsError as exc:
        print(f"Error building image: {exc}")
        return 1

    print("Created root directory")
    for name in DEFAULT_DIRECTORIES:
        print(f"Created {name} directory")
    for path in files:
        print(f"Created file {_image_name(path)} in the {FILES_DIRECTORY} directory")

    try:
        with open(output, "wb") as handle:
            handle.write(image.to_bytes())
    except OSError:
        print("Error creating file")
        return 1

    print(f"Successfully created diosfs image {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())