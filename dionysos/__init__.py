"""diosfs image building, ELF and paging helpers, and a buddy page allocator."""

__version__ = "0.1.0"

__all__ = ["buddy", "elf", "image", "intmath", "layout", "memmap", "mkfs", "paging"]