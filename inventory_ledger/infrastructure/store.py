"""
Ledger store

SQLAlchemy implementation of the ledger persistence contract. Every public
method runs in its own short transaction; quantity mutations are single
conditional UPDATE statements built from the transitions in
``inventory_ledger.domain.quantities``. Reservation line writes pair the
line's committed flag with the quantity update in one transaction, so a line
is held exactly when its stock is reserved.

Driver failures are re-raised as ``StoreUnavailable`` so callers only ever see
the ledger error taxonomy.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, func, literal, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker

from inventory_ledger.core import get_logger
from inventory_ledger.domain import quantities
from inventory_ledger.domain.errors import ReservationConflict, StoreUnavailable
from inventory_ledger.domain.models import (
    InventoryItem,
    Reservation,
    ReservationItem,
    ReservationStatus,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerTotals:
    total_items: int
    total_available: int
    total_reserved: int


class LedgerStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Ledger store error: {e}")
            raise StoreUnavailable(f"Ledger store unavailable: {e.__class__.__name__}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Reads

    def get(self, product_id: str) -> Optional[InventoryItem]:
        with self._session() as session:
            return session.get(InventoryItem, product_id)

    def list_all(self) -> List[InventoryItem]:
        with self._session() as session:
            return list(session.scalars(select(InventoryItem).order_by(InventoryItem.product_id)))

    def list_by_warehouse(self, location: str) -> List[InventoryItem]:
        with self._session() as session:
            stmt = (
                select(InventoryItem)
                .where(InventoryItem.warehouse_location == location)
                .order_by(InventoryItem.product_id)
            )
            return list(session.scalars(stmt))

    def list_below_threshold(self, threshold: int) -> List[InventoryItem]:
        with self._session() as session:
            stmt = (
                select(InventoryItem)
                .where(InventoryItem.available_quantity < threshold)
                .order_by(InventoryItem.available_quantity, InventoryItem.product_id)
            )
            return list(session.scalars(stmt))

    def count_below_threshold(self, threshold: int) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(InventoryItem).where(
                InventoryItem.available_quantity < threshold
            )
            return session.scalar(stmt) or 0

    def has_available(self, product_id: str, quantity: int) -> Optional[bool]:
        """None when the product does not exist"""
        with self._session() as session:
            stmt = select(
                case((InventoryItem.available_quantity >= quantity, True), else_=False)
            ).where(InventoryItem.product_id == product_id)
            result = session.execute(stmt).scalar_one_or_none()
            return None if result is None else bool(result)

    def totals(self) -> LedgerTotals:
        with self._session() as session:
            row = session.execute(
                select(
                    func.count(InventoryItem.product_id),
                    func.coalesce(func.sum(InventoryItem.available_quantity), 0),
                    func.coalesce(func.sum(InventoryItem.reserved_quantity), 0),
                )
            ).one()
            return LedgerTotals(total_items=row[0], total_available=int(row[1]), total_reserved=int(row[2]))

    def ping(self) -> None:
        with self._session() as session:
            session.execute(select(literal(1)))

    # Conditional writes

    def _execute_transition(self, session: Session, product_id: str, transition: quantities.Transition) -> int:
        stmt = (
            update(InventoryItem)
            .where(and_(InventoryItem.product_id == product_id, transition.condition))
            .values(transition.values)
            .execution_options(synchronize_session=False)
        )
        rows = session.execute(stmt).rowcount
        logger.debug(
            f"Conditional {transition.name} on {product_id}: {rows} row(s)",
            extra={'extra_fields': {'product_id': product_id, 'transition': transition.name, 'rows': rows}},
        )
        return rows

    def _apply(self, product_id: str, transition: quantities.Transition) -> int:
        with self._session() as session:
            return self._execute_transition(session, product_id, transition)

    def conditional_adjust(self, product_id: str, delta: int, timestamp: int) -> int:
        return self._apply(product_id, quantities.adjust(delta, timestamp))

    def conditional_reserve(self, product_id: str, quantity: int, timestamp: int) -> int:
        return self._apply(product_id, quantities.reserve(quantity, timestamp))

    def conditional_release(self, product_id: str, quantity: int, timestamp: int) -> int:
        return self._apply(product_id, quantities.release(quantity, timestamp))

    def add(self, item: InventoryItem) -> InventoryItem:
        """Insert or replace a record (provisioning only)"""
        with self._session() as session:
            merged = session.merge(item)
            session.flush()
            return merged

    # Reservation ledger

    def create_reservation(self, reservation_id: str, lines: Sequence[Tuple[str, int]]) -> Reservation:
        session = self._session_factory()
        try:
            if session.get(Reservation, reservation_id) is not None:
                raise ReservationConflict(reservation_id)
            reservation = Reservation(
                reservation_id=reservation_id,
                status=ReservationStatus.PENDING.value,
                items=[
                    ReservationItem(position=i, product_id=product_id, quantity=quantity)
                    for i, (product_id, quantity) in enumerate(lines)
                ],
            )
            session.add(reservation)
            session.commit()
            return reservation
        except IntegrityError as e:
            session.rollback()
            raise ReservationConflict(reservation_id) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreUnavailable(f"Ledger store unavailable: {e.__class__.__name__}") from e
        finally:
            session.close()

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        with self._session() as session:
            return session.get(Reservation, reservation_id)

    def _flip_line(self, session: Session, reservation_id: str, position: int, committed: bool) -> int:
        """Set a line's committed flag only if it currently holds the opposite value"""
        return session.execute(
            update(ReservationItem)
            .where(
                ReservationItem.reservation_id == reservation_id,
                ReservationItem.position == position,
                ReservationItem.committed == (not committed),
            )
            .values(committed=committed)
            .execution_options(synchronize_session=False)
        ).rowcount

    def commit_line(self, reservation_id: str, position: int, product_id: str,
                    quantity: int, timestamp: int) -> bool:
        """Reserve stock for one reservation line and mark it committed, atomically"""
        with self._session() as session:
            if self._execute_transition(session, product_id, quantities.reserve(quantity, timestamp)) == 0:
                return False
            if self._flip_line(session, reservation_id, position, True) == 0:
                session.rollback()
                return False
            return True

    def release_line(self, reservation_id: str, position: int, product_id: str,
                     quantity: int, timestamp: int) -> Optional[bool]:
        """Claim a committed line and return its stock in one transaction.

        True when this call released the line, None when the line was not
        held (never committed, or already claimed by another release), False
        when the stock release was refused; the line then stays committed.
        """
        with self._session() as session:
            if self._flip_line(session, reservation_id, position, False) == 0:
                return None
            if self._execute_transition(session, product_id, quantities.release(quantity, timestamp)) == 0:
                session.rollback()
                return False
            return True

    def set_reservation_status(self, reservation_id: str, status: ReservationStatus) -> None:
        with self._session() as session:
            reservation = session.get(Reservation, reservation_id)
            if reservation is not None:
                reservation.status = status.value

    # Expensive analyses, used only by fault injection

    def analyze_stock_position(self, product_id: str) -> list:
        """Per-warehouse aggregates via correlated subqueries"""
        i1 = aliased(InventoryItem)
        peers = aliased(InventoryItem)
        everyone = aliased(InventoryItem)
        same_wh = peers.warehouse_location == i1.warehouse_location

        warehouse_count = select(func.count()).select_from(peers).where(same_wh).scalar_subquery()
        warehouse_avg = select(func.avg(peers.available_quantity)).where(same_wh).scalar_subquery()
        warehouse_sum = select(func.sum(peers.total_quantity)).where(same_wh).scalar_subquery()
        global_avg = select(func.avg(everyone.available_quantity)).scalar_subquery()
        low_stock = (
            select(func.count()).select_from(everyone)
            .where(everyone.available_quantity < 10)
            .scalar_subquery()
        )
        latest = select(func.max(everyone.last_updated_timestamp)).scalar_subquery()
        rank_in_warehouse = (
            select(func.count()).select_from(peers)
            .where(same_wh, peers.available_quantity > i1.available_quantity)
            .scalar_subquery()
        )
        stmt = (
            select(
                i1.product_id,
                i1.available_quantity,
                i1.reserved_quantity,
                i1.total_quantity,
                i1.warehouse_location,
                warehouse_count.label("warehouse_item_count"),
                warehouse_avg.label("avg_warehouse_stock"),
                warehouse_sum.label("total_warehouse_stock"),
                low_stock.label("low_stock_count"),
                latest.label("latest_update"),
                case(
                    (i1.available_quantity > global_avg, "HIGH"),
                    (i1.available_quantity < global_avg * 0.5, "LOW"),
                    else_="MEDIUM",
                ).label("stock_level"),
            )
            .where(i1.product_id == product_id)
            .order_by(rank_in_warehouse)
        )
        with self._session() as session:
            return list(session.execute(stmt).all())

    def analyze_stock_trend(self, product_id: str) -> list:
        """Windowed ranking joined against a recursive warehouse expansion"""
        inv = aliased(InventoryItem)
        hierarchy = (
            select(
                inv.warehouse_location.label("warehouse_location"),
                inv.warehouse_location.label("root_location"),
                literal(0).label("level"),
            )
            .group_by(inv.warehouse_location)
            .cte("warehouse_hierarchy", recursive=True)
        )
        step = aliased(InventoryItem)
        hierarchy = hierarchy.union_all(
            select(step.warehouse_location, hierarchy.c.root_location, hierarchy.c.level + 1)
            .select_from(step)
            .join(hierarchy, step.warehouse_location != hierarchy.c.warehouse_location)
            .where(hierarchy.c.level < 3)
        )

        by_wh = {"partition_by": inv.warehouse_location}
        analysis = select(
            inv.product_id,
            inv.warehouse_location,
            inv.available_quantity,
            func.row_number().over(order_by=inv.available_quantity.desc(), **by_wh).label("stock_rank"),
            func.lag(inv.available_quantity, 1, 0).over(order_by=inv.last_updated_timestamp, **by_wh).label("prev_quantity"),
            func.lead(inv.available_quantity, 1, 0).over(order_by=inv.last_updated_timestamp, **by_wh).label("next_quantity"),
            func.avg(inv.available_quantity).over(**by_wh).label("avg_warehouse_stock"),
            func.count().over(**by_wh).label("warehouse_item_count"),
        ).subquery("stock_analysis")

        stmt = (
            select(
                analysis.c.product_id,
                analysis.c.stock_rank,
                analysis.c.prev_quantity,
                analysis.c.next_quantity,
                hierarchy.c.level,
                (analysis.c.available_quantity - analysis.c.avg_warehouse_stock).label("stock_deviation"),
                case(
                    (analysis.c.stock_rank <= analysis.c.warehouse_item_count * 0.2, "TOP_20_PERCENT"),
                    (analysis.c.stock_rank <= analysis.c.warehouse_item_count * 0.5, "TOP_50_PERCENT"),
                    else_="BOTTOM_50_PERCENT",
                ).label("stock_category"),
            )
            .select_from(analysis)
            .join(hierarchy, analysis.c.warehouse_location == hierarchy.c.warehouse_location)
            .where(analysis.c.product_id == product_id)
            .order_by(analysis.c.stock_rank, hierarchy.c.level.desc())
        )
        with self._session() as session:
            return list(session.execute(stmt).all())

    def analyze_stock_distribution(self, product_id: str) -> list:
        """Global statistics, percentiles and a same-warehouse self join"""
        main = aliased(InventoryItem)
        inv = aliased(InventoryItem)
        ranked = select(
            inv.available_quantity,
            func.cume_dist().over(order_by=inv.available_quantity).label("cume"),
        ).subquery("ranked")

        def percentile(p: float):
            return select(func.min(ranked.c.available_quantity)).where(ranked.c.cume >= p).scalar_subquery()

        mean = select(func.avg(inv.available_quantity)).scalar_subquery()
        mean_sq = select(func.avg(inv.available_quantity * inv.available_quantity)).scalar_subquery()
        left = aliased(InventoryItem)
        right = aliased(InventoryItem)
        correlation = (
            select(func.coalesce(func.avg(left.available_quantity * right.available_quantity), 0))
            .select_from(left)
            .join(right, and_(
                left.warehouse_location == right.warehouse_location,
                left.product_id != right.product_id,
            ))
            .scalar_subquery()
        )
        above = select(func.count()).select_from(inv).where(inv.available_quantity > mean).scalar_subquery()
        below = select(func.count()).select_from(inv).where(inv.available_quantity < mean).scalar_subquery()

        stmt = select(
            main.product_id,
            main.available_quantity,
            main.warehouse_location,
            select(func.count()).select_from(inv).scalar_subquery().label("total_items"),
            mean.label("avg_stock"),
            select(func.min(inv.available_quantity)).scalar_subquery().label("min_stock"),
            select(func.max(inv.available_quantity)).scalar_subquery().label("max_stock"),
            (mean_sq - mean * mean).label("variance_stock"),
            percentile(0.25).label("p25"),
            percentile(0.50).label("p50"),
            percentile(0.75).label("p75"),
            percentile(0.90).label("p90"),
            correlation.label("location_correlation"),
            case((above > below, "INCREASING"), else_="DECREASING").label("stock_trend"),
        ).where(main.product_id == product_id)
        with self._session() as session:
            return list(session.execute(stmt).all())
