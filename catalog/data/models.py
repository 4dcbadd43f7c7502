"""
SQLAlchemy database models.
These are the authoritative source of truth for catalog data.

Products, categories, variants and reviews are the primary collections.
``product_count_entries`` / ``product_count_totals`` hold the
namespace-partitioned product counter; they are derived state and can be
rebuilt from ``products`` at any time.
"""

import threading
import time
import uuid
from typing import Any, Dict

from sqlalchemy import (
    JSON, Boolean, Column, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)

from catalog.data.database import Base

PRODUCT_STATUSES = ("draft", "active", "archived")
PRODUCT_TYPES = ("physical", "digital", "gift_card")
DIGITAL_PRODUCT_TYPES = ("digital", "gift_card")
DIGITAL_STOCK_MODES = ("unlimited", "limited")
REVIEW_STATUSES = ("pending", "approved", "rejected")
USER_ROLES = ("customer", "admin")


def new_id() -> str:
    return str(uuid.uuid4())


class _CreationClock:
    """Epoch-millisecond timestamps that strictly increase within the process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0.0

    def __call__(self) -> float:
        with self._lock:
            now = time.time() * 1000.0
            if now <= self._last:
                now = self._last + 0.001
            self._last = now
            return now


creation_clock = _CreationClock()


class User(Base):
    """Identity record; ``auth_subject`` is the external auth provider's subject id."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    auth_subject = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    first_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="customer", index=True)


class Category(Base):
    """Flat parent-pointer category table; the tree is derived on read."""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    parent_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    creation_time = Column(Float, nullable=False, default=creation_clock)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "image_url": self.image_url,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
        }


class Product(Base):
    """
    Product catalog record.

    Prices are integers in minor currency units. Stock for physical products
    lives on variants; digital and gift card products use the digital stock
    fields instead.
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    story = Column(Text, nullable=True)

    product_type = Column(String(20), nullable=False, default="physical")
    digital_files = Column(JSON, nullable=True)
    max_downloads = Column(Integer, nullable=True)
    digital_stock_mode = Column(String(20), nullable=True)
    digital_stock_count = Column(Integer, nullable=True)
    gift_card_code_mode = Column(String(20), nullable=True)

    base_price = Column(Integer, nullable=False)
    compare_at_price = Column(Integer, nullable=True)

    images = Column(JSON, nullable=False, default=list)
    featured_image = Column(Text, nullable=True)

    color_options = Column(JSON, nullable=True)
    size_options = Column(JSON, nullable=True)

    weight = Column(Float, nullable=True)
    dimensions = Column(JSON, nullable=True)
    requires_shipping = Column(Boolean, nullable=False, default=True)
    ships_independently = Column(Boolean, nullable=True)

    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    vendor = Column(String(255), nullable=True)
    tags = Column(JSON, nullable=True)
    specifications = Column(JSON, nullable=True)
    features = Column(JSON, nullable=True)

    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, index=True)
    shipping_label = Column(String(255), nullable=True)
    shipping_sublabel = Column(String(255), nullable=True)
    warranty_label = Column(String(255), nullable=True)
    warranty_sublabel = Column(String(255), nullable=True)
    policy_content = Column(Text, nullable=True)

    is_featured = Column(Boolean, nullable=True, index=True)
    published_at = Column(Float, nullable=True)
    creation_time = Column(Float, nullable=False, default=creation_clock, index=True)
    updated_at = Column(Float, nullable=True)

    __table_args__ = (
        Index("ix_products_status_creation", "status", "creation_time"),
        Index("ix_products_category_creation", "category_id", "creation_time"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class ProductVariant(Base):
    """Sellable color/size combination owned by one product."""
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    color_id = Column(String(64), nullable=True)
    size = Column(String(64), nullable=True)
    sku = Column(String(128), nullable=False, unique=True, index=True)
    stock_count = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=True)
    price_adjustment = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)
    dimensions = Column(JSON, nullable=True)
    image_url = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    creation_time = Column(Float, nullable=False, default=creation_clock)

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class Review(Base):
    """Customer review; only approved reviews count towards a product's rating."""
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    # No foreign key: reviews outlive a hard-deleted product
    product_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    images = Column(JSON, nullable=True)
    is_verified_purchase = Column(Boolean, nullable=False, default=False)
    helpful_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="pending", index=True)
    creation_time = Column(Float, nullable=False, default=creation_clock)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_reviews_user_product"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class ProductCountEntry(Base):
    """
    One counter entry per tracked product.

    ``namespace`` is ``"v2_" + status``; ``sort_key`` is the product's
    creation time, so entries of a namespace can be range-scanned in order.
    """
    __tablename__ = "product_count_entries"

    product_id = Column(String(36), primary_key=True)
    namespace = Column(String(32), nullable=False)
    sort_key = Column(Float, nullable=False)

    __table_args__ = (
        Index("ix_product_count_entries_namespace_sort", "namespace", "sort_key"),
    )


class ProductCountTotal(Base):
    """Running total per namespace; read by primary key, changed by atomic increments."""
    __tablename__ = "product_count_totals"

    namespace = Column(String(32), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
