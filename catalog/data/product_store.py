"""
Catalog data access layer backed by SQLAlchemy.

The store is the only module that talks to the database. Each fetch maps onto
one index of the original document store:

    products          by_slug, by_status, by_categoryId, by_isFeatured,
                      search index on name
    product_variants  by_productId, by_sku
    categories        by_slug, by_parentId
    reviews           by_productId (+ status filter), by_userId_and_productId,
                      search index on content

Ordering is always newest first (``creation_time`` desc, ``id`` desc as the
tie-break) unless stated otherwise.
"""
from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import String, and_, case, func, or_, select
from sqlalchemy.orm import Session

from catalog.data.models import Category, Product, ProductVariant, Review, User
from catalog.utils.logger import get_logger

logger = get_logger("data.product_store")

_TERM_PATTERN = re.compile(r"\w+")
# Punctuation that separates name tokens; terms never contain these
_TOKEN_SEPARATORS = "-/.,:;()[]&+'\"!?#*|"


@dataclass(frozen=True)
class ScanPosition:
    """Position of the last row returned by a newest-first scan."""
    creation_time: float
    row_id: str


def _token_text(column):
    """Lowercased column with separators turned into spaces and padded on both ends."""
    text = func.lower(column, type_=String)
    for separator in _TOKEN_SEPARATORS:
        text = func.replace(text, separator, " ", type_=String)
    return (" " + text + " ")



def _token_matches(column, terms: Sequence[str]) -> list:
    """One clause per term: whole-token match, except the last term which may be a token prefix."""
    text = _token_text(column)
    matches = [text.contains(f" {term} ", autoescape=True) for term in terms[:-1]]
    matches.append(text.contains(f" {terms[-1]}", autoescape=True))
    return matches


def _scored(matches: Sequence[Any]):
    score = case((matches[0], 1), else_=0)
    for match in matches[1:]:
        score = score + case((match, 1), else_=0)
    return score


def _after(model, after: Optional[ScanPosition]):
    """Keyset condition for rows strictly after ``after`` in newest-first order."""
    return or_(
        model.creation_time < after.creation_time,
        and_(model.creation_time == after.creation_time, model.id < after.row_id),
    )


def search_terms(query: str) -> List[str]:
    """Split a free-text query into lowercase search terms (duplicates dropped)."""
    return list(dict.fromkeys(_TERM_PATTERN.findall((query or "").lower())))


class ProductStore:
    """Index-backed reads and the write helpers product mutations need."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.session.get(Product, product_id)

    def get_product_by_slug(self, slug: str) -> Optional[Product]:
        return self.session.scalars(select(Product).where(Product.slug == slug).limit(1)).first()

    def product_slug_exists(self, slug: str) -> bool:
        return self.get_product_by_slug(slug) is not None

    def by_status(self, status: str, limit: Optional[int] = None) -> List[Product]:
        return self._newest(Product.status == status, limit)

    def by_category(self, category_id: str, limit: Optional[int] = None) -> List[Product]:
        return self._newest(Product.category_id == category_id, limit)

    def newest(self, limit: Optional[int] = None) -> List[Product]:
        return self._newest(None, limit)

    def featured(self, limit: Optional[int] = None, status: Optional[str] = "active") -> List[Product]:
        condition = Product.is_featured.is_(True)
        if status is not None:
            condition = and_(condition, Product.status == status)
        return self._newest(condition, limit)

    def search_by_name(self, query: str, limit: int) -> List[Product]:
        """
        Search-index strategy: case-insensitive token match on the product name.

        Every term but the last must equal a whole name token; the last term
        may be a token prefix, so "oak" finds "Oak Table" but not "Wool Cloak".

        Rows matching more terms rank first; ties go to the newest product.
        At most ``limit`` rows are returned.
        """
        terms = search_terms(query)
        if not terms:
            return []

        matches = _token_matches(Product.name, terms)
        score = _scored(matches)
        stmt = (
            select(Product)
            .where(or_(*matches))
            .order_by(score.desc(), Product.creation_time.desc(), Product.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def scan_page(
        self,
        status: Optional[str],
        category_id: Optional[str],
        after: Optional[ScanPosition],
        num_items: int,
    ) -> Tuple[List[Product], bool]:
        """
        Newest-first page over a single index, resuming after ``after``.

        Only one of ``status`` / ``category_id`` is index-accelerated; status
        wins when both are given and the caller post-filters on category.

        Returns:
            (rows, has_more)
        """
        if status is not None:
            condition = Product.status == status
        elif category_id is not None:
            condition = Product.category_id == category_id
        else:
            condition = None

        stmt = select(Product)
        if condition is not None:
            stmt = stmt.where(condition)
        if after is not None:
            stmt = stmt.where(_after(Product, after))
        stmt = stmt.order_by(Product.creation_time.desc(), Product.id.desc()).limit(num_items + 1)

        rows = list(self.session.scalars(stmt))
        return rows[:num_items], len(rows) > num_items

    def count_by_category(self, category_id: str, status: Optional[str] = None) -> int:
        """Count one category's products by walking the category index."""
        products = self.by_category(category_id)
        if status is not None:
            products = [p for p in products if p.status == status]
        return len(products)

    def add_product(self, product: Product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    def delete_product(self, product: Product) -> int:
        """Delete a product and every variant it owns; returns the variant count."""
        removed = self.delete_variants_for(product.id)
        self.session.delete(product)
        self.session.flush()
        return removed

    def products_by_id(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        ids = {pid for pid in product_ids if pid}
        if not ids:
            return {}
        return {row.id: row for row in self.session.scalars(select(Product).where(Product.id.in_(ids)))}

    def _newest(self, condition, limit: Optional[int]) -> List[Product]:
        stmt = select(Product)
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.order_by(Product.creation_time.desc(), Product.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def all_categories(self) -> List[Category]:
        return list(self.session.scalars(select(Category)))

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.session.get(Category, category_id)

    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        return self.session.scalars(select(Category).where(Category.slug == slug).limit(1)).first()

    def category_slug_owner(self, slug: str) -> Optional[str]:
        category = self.get_category_by_slug(slug)
        return category.id if category else None

    def children_of(self, parent_id: Optional[str]) -> List[Category]:
        if parent_id is None:
            condition = Category.parent_id.is_(None)
        else:
            condition = Category.parent_id == parent_id
        return list(self.session.scalars(select(Category).where(condition)))

    def categories_by_id(self, category_ids: Iterable[str]) -> Dict[str, Category]:
        ids = {cid for cid in category_ids if cid}
        if not ids:
            return {}
        rows = self.session.scalars(select(Category).where(Category.id.in_(ids)))
        return {row.id: row for row in rows}

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def variants_for(self, product_id: str) -> List[ProductVariant]:
        stmt = (
            select(ProductVariant)
            .where(ProductVariant.product_id == product_id)
            .order_by(ProductVariant.creation_time.asc())
        )
        return list(self.session.scalars(stmt))

    def variants_for_many(self, product_ids: Sequence[str]) -> Dict[str, List[ProductVariant]]:
        grouped: Dict[str, List[ProductVariant]] = defaultdict(list)
        if not product_ids:
            return grouped
        stmt = (
            select(ProductVariant)
            .where(ProductVariant.product_id.in_(set(product_ids)))
            .order_by(ProductVariant.creation_time.asc())
        )
        for variant in self.session.scalars(stmt):
            grouped[variant.product_id].append(variant)
        return grouped

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        return self.session.get(ProductVariant, variant_id)

    def get_variant_by_sku(self, sku: str) -> Optional[ProductVariant]:
        return self.session.scalars(select(ProductVariant).where(ProductVariant.sku == sku).limit(1)).first()

    def skus_in_use(self, skus: Iterable[str], exclude_product_id: Optional[str] = None) -> List[str]:
        """SKUs from ``skus`` already held by a variant (optionally ignoring one product's variants)."""
        wanted = set(skus)
        if not wanted:
            return []
        stmt = select(ProductVariant.sku).where(ProductVariant.sku.in_(wanted))
        if exclude_product_id is not None:
            stmt = stmt.where(ProductVariant.product_id != exclude_product_id)
        return sorted(self.session.scalars(stmt))

    def delete_variants_for(self, product_id: str) -> int:
        """Delete every variant of a product and flush, so their SKUs are free again."""
        variants = self.variants_for(product_id)
        for variant in variants:
            self.session.delete(variant)
        self.session.flush()
        return len(variants)

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def approved_ratings(self, product_id: str) -> List[int]:
        stmt = select(Review.rating).where(Review.product_id == product_id, Review.status == "approved")
        return list(self.session.scalars(stmt))

    def approved_ratings_for_many(self, product_ids: Sequence[str]) -> Dict[str, List[int]]:
        grouped: Dict[str, List[int]] = defaultdict(list)
        if not product_ids:
            return grouped
        stmt = select(Review.product_id, Review.rating).where(
            Review.product_id.in_(set(product_ids)), Review.status == "approved",
        )
        for product_id, rating in self.session.execute(stmt):
            grouped[product_id].append(rating)
        return grouped

    def approved_reviews(self, product_id: str, limit: int) -> List[Review]:
        stmt = (
            select(Review)
            .where(Review.product_id == product_id, Review.status == "approved")
            .order_by(Review.creation_time.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def get_review(self, review_id: str) -> Optional[Review]:
        return self.session.get(Review, review_id)

    def review_by_user(self, user_id: str, product_id: str) -> Optional[Review]:
        stmt = select(Review).where(Review.user_id == user_id, Review.product_id == product_id).limit(1)
        return self.session.scalars(stmt).first()

    def scan_reviews(self, after: Optional[ScanPosition], num_items: int) -> Tuple[List[Review], bool]:
        """Newest-first page over all reviews regardless of status."""
        stmt = select(Review)
        if after is not None:
            stmt = stmt.where(_after(Review, after))
        stmt = stmt.order_by(Review.creation_time.desc(), Review.id.desc()).limit(num_items + 1)
        rows = list(self.session.scalars(stmt))
        return rows[:num_items], len(rows) > num_items

    def search_reviews(self, query: str, limit: int) -> List[Review]:
        """Token search over review content, best match first."""
        terms = search_terms(query)
        if not terms:
            return []
        matches = _token_matches(Review.content, terms)
        stmt = (
            select(Review)
            .where(or_(*matches))
            .order_by(_scored(matches).desc(), Review.creation_time.desc(), Review.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def user_by_subject(self, subject: str) -> Optional[User]:
        return self.session.scalars(select(User).where(User.auth_subject == subject).limit(1)).first()

    def users_by_id(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        return {user.id: user for user in self.session.scalars(select(User).where(User.id.in_(ids)))}
