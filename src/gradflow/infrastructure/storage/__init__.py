from ._allocator import Allocator, CPUAllocator, get_allocator
from ._storage import Storage, resize_bytes

__all__ = [
    Allocator.__name__,
    CPUAllocator.__name__,
    Storage.__name__,
    get_allocator.__name__,
    resize_bytes.__name__,
]
