"""
Namespace-partitioned product counter.

Every tracked product owns one entry keyed by product id and filed under
``"v2_" + status`` with its creation time as the sort key. A per-namespace
total row is kept beside the entries so ``count()`` is a primary-key read
instead of a scan. Totals only ever move through ``count = count + delta``
statements, which the database applies atomically, so concurrent writers in
the same namespace cannot lose updates.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from catalog.core.errors import AggregateDuplicateKey, AggregateKeyNotFound
from catalog.data.models import PRODUCT_STATUSES, ProductCountEntry, ProductCountTotal

NAMESPACE_PREFIX = "v2_"


def namespace_for(status: str) -> str:
    return NAMESPACE_PREFIX + status


@dataclass(frozen=True)
class CounterKey:
    """The fields of a product the counter tracks."""
    product_id: str
    status: str
    sort_key: float

    @property
    def namespace(self) -> str:
        return namespace_for(self.status)

    @classmethod
    def of(cls, product) -> "CounterKey":
        return cls(product_id=product.id, status=product.status, sort_key=product.creation_time)


class CountAggregate:
    """Insert / replace / delete / count primitives over the counter tables."""

    def ensure_namespaces(self, session: Session, statuses: Iterable[str] = PRODUCT_STATUSES) -> None:
        """Create a zero total row for every namespace that lacks one."""
        for status in statuses:
            namespace = namespace_for(status)
            if session.get(ProductCountTotal, namespace) is None:
                session.add(ProductCountTotal(namespace=namespace, count=0))
        session.flush()

    def insert(self, session: Session, key: CounterKey) -> None:
        if session.get(ProductCountEntry, key.product_id) is not None:
            raise AggregateDuplicateKey(f"Product {key.product_id} is already counted")
        session.add(ProductCountEntry(
            product_id=key.product_id, namespace=key.namespace, sort_key=key.sort_key,
        ))
        session.flush()
        self._bump(session, key.namespace, 1)

    def replace(self, session: Session, old: CounterKey, new: CounterKey) -> None:
        entry = self._existing(session, old)
        if entry.namespace == new.namespace and entry.sort_key == new.sort_key:
            return
        entry.namespace = new.namespace
        entry.sort_key = new.sort_key
        session.flush()
        if old.namespace != new.namespace:
            self._bump(session, old.namespace, -1)
            self._bump(session, new.namespace, 1)

    def delete(self, session: Session, key: CounterKey) -> None:
        entry = self._existing(session, key)
        session.delete(entry)
        session.flush()
        self._bump(session, key.namespace, -1)

    def count(self, session: Session, namespace: str) -> int:
        value = session.execute(
            select(ProductCountTotal.count).where(ProductCountTotal.namespace == namespace)
        ).scalar()
        return int(value or 0)

    def count_all(self, session: Session, statuses: Iterable[str] = PRODUCT_STATUSES) -> int:
        return sum(self.count(session, namespace_for(status)) for status in statuses)

    def totals(self, session: Session, statuses: Iterable[str] = PRODUCT_STATUSES) -> Dict[str, int]:
        return {status: self.count(session, namespace_for(status)) for status in statuses}

    def recompute_totals(self, session: Session, statuses: Iterable[str] = PRODUCT_STATUSES) -> Dict[str, int]:
        """
        Overwrite every total with the number of entries in its namespace.

        Maintenance only: this is the one place totals are assigned rather
        than incremented.
        """
        rows = session.execute(
            select(ProductCountEntry.namespace, func.count())
            .group_by(ProductCountEntry.namespace)
        ).all()
        counted = {namespace: int(n) for namespace, n in rows}
        namespaces = {namespace_for(status) for status in statuses} | set(counted)
        for namespace in namespaces:
            total = session.get(ProductCountTotal, namespace)
            if total is None:
                session.add(ProductCountTotal(namespace=namespace, count=counted.get(namespace, 0)))
            else:
                total.count = counted.get(namespace, 0)
        session.flush()
        return {namespace: counted.get(namespace, 0) for namespace in sorted(namespaces)}

    def _existing(self, session: Session, key: CounterKey) -> ProductCountEntry:
        entry: Optional[ProductCountEntry] = session.get(ProductCountEntry, key.product_id)
        if entry is None or entry.namespace != key.namespace:
            raise AggregateKeyNotFound(
                f"Product {key.product_id} is not counted under {key.namespace}"
            )
        return entry

    def _bump(self, session: Session, namespace: str, delta: int) -> None:
        result = session.execute(
            update(ProductCountTotal)
            .where(ProductCountTotal.namespace == namespace)
            .values(count=ProductCountTotal.count + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.add(ProductCountTotal(namespace=namespace, count=delta))
            session.flush()
