"""
Upload staging for incoming video files.

Streams multipart uploads to the local upload directory under a size
ceiling before any storage backend sees them.
"""

from .receiver import UploadReceiver, staging_filename

__all__ = ["UploadReceiver", "staging_filename"]
