"""Object store backends shared by the recorder and the coordinator."""

from agqr.storage.base import ObjectInfo, Storage
from agqr.storage.local import LocalStorage
from agqr.storage.s3 import S3Storage

__all__ = ["ObjectInfo", "Storage", "LocalStorage", "S3Storage"]
