"""Services package."""

from .image_store import FileImageStore, ImageStore, ImageStoreError, MemoryImageStore, StoredImage

__all__ = [
    'FileImageStore',
    'ImageStore',
    'ImageStoreError',
    'MemoryImageStore',
    'StoredImage',
]
