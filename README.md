# dionysos

Tools for the diosfs filesystem, plus a few memory-management building blocks
for a small x86-64 kernel. It is a plain Python package with no third-party
dependencies.

## What it provides

- `dionysos.layout` holds the on-disk diosfs records: `Superblock`, `Inode` and
  `DirectoryEntry`. Each has `pack()` and `unpack()`. The module also defines
  the `InodeType` values (`DIRECTORY`, `REG_FILE`, `SYMLINK`) and the block,
  inode and directory limits. `size_info(gigabytes)` plans how an image is
  divided into inodes, data blocks and bitmaps. `indirection_indices(n)` locates
  a file-relative block among the direct, single, double and triple indirect
  pointers. Invalid structures raise `DiosfsError`.
- `dionysos.image` provides `DiosfsImage`, an in-memory image. It stores only
  the blocks that have been written. It allocates inodes and data blocks
  through the bitmaps and creates the root directory (`create_root`). It also
  creates entries in directories (`create`, `write_dirent`) and lists them
  (`directory_entries`). For files it grows them through indirect blocks
  (`allocate_inode_blocks`, `block_number_for`) and writes their contents
  (`write_bytes`). `to_bytes()` serialises the whole image.
- `dionysos.mkfs` holds the `mkdiosfs` command, together with its helpers
  `parse_size` and `build_image`.
- `dionysos.paging` covers four-level page-table index helpers (`p4d_index`,
  `pud_index`, `pmd_index`, `pt_index`), page rounding, page-table-entry address
  and flag extraction, and higher-half direct map translation (`phys_to_virt`,
  `virt_to_phys`).
- `dionysos.elf` parses ELF64 file headers (`ElfHeader.parse`) and program
  headers (`ProgramHeader.parse`, `program_headers`). Malformed input raises
  `ElfFormatError`.
- `dionysos.intmath` provides `checked_pow`, an integer power that returns 0
  when the result does not fit in 64 bits.
- `dionysos.memmap` covers memory-map entries (`MemoryMapEntry`, `MemoryType`)
  and `usable_ranges`, which returns the usable regions as `PageRange`s with the
  largest first. It also has `is_power_of_two` and `next_power_of_two`.
- `dionysos.buddy` provides `BuddyAllocator`, a buddy-system page allocator
  built from a memory map. Requests larger than one maximum-order block
  (2048 pages) are served by a run of adjacent maximum-order blocks. Freed
  blocks merge with free buddies. Exhaustion raises `OutOfMemoryError`.

## Installing

```
pip install .
```

## Making an image

```
mkdiosfs disk.img 1
```

This writes a 1 GB diosfs image named `disk.img`. The image holds the root
directory and the default directories `bin`, `etc`, `home`, `root`, `mnt` and
`var`. Sizes from 1 to 8 GB are accepted. The whole image is assembled in
memory before it is written.

To copy files into the image, list them after `--f`. They are placed in the
`home` directory. Each file's name in the image is everything after the first
`/` of the path as given, so `build/kernel` becomes `kernel`:

```
mkdiosfs disk.img 1 --f notes.txt build/kernel
```

The command prints what it created and exits with status 0. On bad arguments,
an unreadable input file, or an output file that cannot be written, it exits
with status 1.

## Using the library

```python
from dionysos.image import DiosfsImage
from dionysos.layout import InodeType

image = DiosfsImage.from_gigabytes(1)
root = image.create_root()
number = image.create(root, "hello.txt", InodeType.REG_FILE)
inode = image.read_inode(number)
image.write_bytes(inode, b"hello, world\n", 0)
print([entry.name for entry in image.directory_entries(root)])
data = image.to_bytes()
```

```python
from dionysos.buddy import BuddyAllocator
from dionysos.memmap import MemoryMapEntry, MemoryType

memory_map = [MemoryMapEntry(0x100000, 64 << 20, MemoryType.USABLE)]
allocator = BuddyAllocator(memory_map, hhdm_offset=0)
address = allocator.alloc(4)
allocator.free(address)
```

## What it does not do

`DiosfsImage` only builds new images. It cannot load an existing image file,
and it has no operations to read a file's contents back, remove or rename
entries, or mount an image. Directories are limited to their direct blocks.
The memory-management modules model the allocator's arithmetic and
bookkeeping over plain integers, and they do not touch real memory or page
tables.

## Running the tests

```
pip install .[test]
pytest
```