"""
The single enforcement point for keeping the product counter in step with
the products table.

Every product mutation calls exactly one ``on_*`` hook inside its own
transaction. Each counter step runs in a SAVEPOINT: when it fails, only the
step is rolled back and the product write still commits. The fallback policy
is replace, then insert; when every step fails an ``AggregateSyncFailure``
is logged, counted in the metrics and kept in ``recent_failures()`` until an
operator runs ``backfill()``.
"""
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Deque, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog.aggregate.count_aggregate import CountAggregate, CounterKey, namespace_for
from catalog.core.errors import AggregateError, AggregateSyncFailure
from catalog.data.models import PRODUCT_STATUSES, Product, ProductCountEntry
from catalog.utils.metrics import MetricsCollector, metrics_collector
from catalog.utils.structured_logger import StructuredLogger, structured_logger


@dataclass
class BackfillReport:
    inserted: int = 0
    moved: int = 0
    removed: int = 0
    unchanged: int = 0
    totals: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


class ProductCountSync:
    """Applies product mutations to the counter with the replace-then-insert policy."""

    def __init__(
        self,
        aggregate: Optional[CountAggregate] = None,
        events: Optional[StructuredLogger] = None,
        metrics: Optional[MetricsCollector] = None,
        max_retained_failures: int = 100,
    ):
        self.aggregate = aggregate or CountAggregate()
        self.events = events or structured_logger
        self.metrics = metrics or metrics_collector
        self._failures: Deque[AggregateSyncFailure] = deque(maxlen=max_retained_failures)

    def on_insert(self, session: Session, product: Product, mutation: str = "create") -> bool:
        key = CounterKey.of(product)
        return self._apply(session, mutation, key.product_id, [key.namespace], [
            ("insert", lambda: self.aggregate.insert(session, key)),
        ])

    def on_replace(self, session: Session, old: CounterKey, product: Product, mutation: str = "update") -> bool:
        new = CounterKey.of(product)
        return self._apply(session, mutation, new.product_id, [old.namespace, new.namespace], [
            ("replace", lambda: self.aggregate.replace(session, old, new)),
            ("insert", lambda: self.aggregate.insert(session, new)),
        ])

    def on_delete(self, session: Session, old: CounterKey, mutation: str = "hard_delete") -> bool:
        return self._apply(session, mutation, old.product_id, [old.namespace], [
            ("delete", lambda: self.aggregate.delete(session, old)),
        ])

    def recent_failures(self) -> List[AggregateSyncFailure]:
        return list(self._failures)

    def clear_failures(self) -> None:
        self._failures.clear()

    def backfill(self, session: Session) -> BackfillReport:
        """
        Rebuild the counter from a full product scan.

        Missing entries are inserted, entries filed under the wrong namespace
        or sort key are moved, entries of deleted products are removed, and
        the totals are recomputed from the entries. A second run over the same
        data changes nothing.
        """
        started = time.perf_counter()
        report = BackfillReport()

        expected = {
            product_id: (namespace_for(status), creation_time)
            for product_id, status, creation_time in session.execute(
                select(Product.id, Product.status, Product.creation_time)
            )
        }
        entries = {entry.product_id: entry for entry in session.scalars(select(ProductCountEntry))}

        for product_id, (namespace, sort_key) in expected.items():
            entry = entries.get(product_id)
            if entry is None:
                session.add(ProductCountEntry(product_id=product_id, namespace=namespace, sort_key=sort_key))
                report.inserted += 1
            elif entry.namespace != namespace or entry.sort_key != sort_key:
                entry.namespace = namespace
                entry.sort_key = sort_key
                report.moved += 1
            else:
                report.unchanged += 1

        for product_id, entry in entries.items():
            if product_id not in expected:
                session.delete(entry)
                report.removed += 1

        session.flush()
        self.aggregate.recompute_totals(session, PRODUCT_STATUSES)
        report.totals = self.aggregate.totals(session, PRODUCT_STATUSES)
        self._failures.clear()

        self.events.log_backfill(report.to_dict(), (time.perf_counter() - started) * 1000)
        return report

    def _apply(
        self,
        session: Session,
        mutation: str,
        product_id: str,
        namespaces: Sequence[str],
        steps: Sequence[tuple],
    ) -> bool:
        errors: List[str] = []
        for name, step in steps:
            try:
                with session.begin_nested():
                    step()
                return True
            except (AggregateError, SQLAlchemyError) as exc:
                self.events.log_aggregate_step_failure(name, mutation, product_id, str(exc))
                errors.append(f"{name}: {exc}")

        failure = AggregateSyncFailure(
            mutation=mutation,
            product_id=product_id,
            namespaces=tuple(dict.fromkeys(namespaces)),
            errors=tuple(errors),
            occurred_at=time.time(),
        )
        self._failures.append(failure)
        self.metrics.record_aggregate_sync_failure(mutation)
        self.events.log_aggregate_sync_failure(mutation, product_id, list(failure.namespaces), errors)
        return False
