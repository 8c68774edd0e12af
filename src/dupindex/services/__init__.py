"""
Services built on the core index: filesystem primitives and the resolution engine.
"""

from .file_service import FileService
from .resolution_service import ResolutionService

__all__ = [
    "FileService",
    "ResolutionService",
]
