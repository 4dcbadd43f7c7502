"""
Data access layer: SQLAlchemy engine/session handling, ORM models and the
index-backed ``ProductStore``.
"""
from catalog.data.database import Base, init_db, session_scope
from catalog.data.product_store import ProductStore

__all__ = ["Base", "init_db", "session_scope", "ProductStore"]
