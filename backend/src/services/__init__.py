"""Service layer: configuration, document store, authentication, and search."""

from .auth import AuthError, AuthService
from .config import AppConfig, get_config, reload_config
from .database import DatabaseService, init_database
from .document_index import DocumentIndexService, normalize_tag
from .search import InvalidQueryError, SearchService

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "DatabaseService",
    "init_database",
    "AuthService",
    "AuthError",
    "DocumentIndexService",
    "normalize_tag",
    "SearchService",
    "InvalidQueryError",
]
