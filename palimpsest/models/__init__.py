"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .user import User
from .document import Document, DocumentKind, DocumentType, ApartmentProperties
from .suggestion import Suggestion
from .resource import Resource, Embedding

__all__ = [
    "RecordBase",
    "User",
    "Document", "DocumentKind", "DocumentType", "ApartmentProperties",
    "Suggestion",
    "Resource", "Embedding",
]
