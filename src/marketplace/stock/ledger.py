"""StockLedgerEntry aggregate (CQRS) — per-variant stock counters.

One entry per (product, variant). Counters always close:

    available + reserved + sold == initial

Each suborder holds at most one reservation per entry. The reservation's
status records whether its units went to sold, back to available, or
(after a paid suborder was cancelled) were returned, so every reservation
leaves the reserved bucket exactly once.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from marketplace.charges.calculator import round_money
from marketplace.domain import marketplace
from marketplace.errors import InsufficientStockError
from marketplace.stock.events import (
    ReservedStockReleased,
    ReservedStockSold,
    SoldStockReturned,
    StockLedgerOpened,
    StockReserved,
    VariantRestocked,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReservationStatus(Enum):
    ACTIVE = "Active"
    SOLD = "Sold"
    RELEASED = "Released"
    RETURNED = "Returned"


def ledger_entry_id(product_id, variant_id) -> str:
    """Deterministic identity of the entry for a (product, variant) pair."""
    return f"{product_id}::{variant_id}"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="StockLedgerEntry")
class StockReservation:
    suborder_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    status = String(choices=ReservationStatus, default=ReservationStatus.ACTIVE.value)
    reserved_at = DateTime(required=True)
    settled_at = DateTime()


@marketplace.entity(part_of="StockLedgerEntry")
class RestockRecord:
    quantity = Integer(required=True, min_value=1)
    notes = String(max_length=500)
    restocked_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@marketplace.aggregate
class StockLedgerEntry:
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    initial_stock = Integer(default=0)
    available_stock = Integer(default=0)
    reserved_stock = Integer(default=0)
    sold_count = Integer(default=0)
    total_earnings = Float(default=0.0)
    reservations = HasMany(StockReservation)
    restocks = HasMany(RestockRecord)
    last_restocked_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def counters_must_not_be_negative(self):
        for name in ("initial_stock", "available_stock", "reserved_stock", "sold_count"):
            if (getattr(self, name) or 0) < 0:
                raise ValidationError({name: [f"Stock ledger counter {name} cannot go negative"]})

    @invariant.post
    def ledger_must_close(self):
        total = (self.available_stock or 0) + (self.reserved_stock or 0) + (self.sold_count or 0)
        if total != (self.initial_stock or 0):
            raise ValidationError(
                {"stock": [f"Stock ledger out of balance: {total} accounted for, {self.initial_stock} stocked"]}
            )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def materialize(cls, product_id, variant_id, seller_id, declared_quantity):
        """Open the ledger for a variant with its declared stock quantity."""
        if declared_quantity < 0:
            raise ValidationError({"initial_stock": ["Declared quantity cannot be negative"]})

        now = datetime.now(UTC)
        entry = cls(
            id=ledger_entry_id(product_id, variant_id),
            product_id=product_id,
            variant_id=variant_id,
            seller_id=seller_id,
            initial_stock=declared_quantity,
            available_stock=declared_quantity,
            reserved_stock=0,
            sold_count=0,
            total_earnings=0.0,
            created_at=now,
            updated_at=now,
        )
        entry.raise_(
            StockLedgerOpened(
                entry_id=str(entry.id),
                product_id=str(product_id),
                variant_id=str(variant_id),
                seller_id=str(seller_id),
                initial_stock=declared_quantity,
                opened_at=now,
            )
        )
        return entry

    def reservation_for(self, suborder_id):
        return next(
            (r for r in (self.reservations or []) if str(r.suborder_id) == str(suborder_id)),
            None,
        )

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def reserve(self, suborder_id, quantity, unit_price):
        """Move ``quantity`` units from available to reserved for a suborder.

        Callers check availability across a whole order first; a request
        beyond what is available is refused before any counter moves.
        Reserving again for the same suborder and quantity is a no-op.
        """
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        existing = self.reservation_for(suborder_id)
        if existing is not None:
            if existing.quantity == quantity and existing.status == ReservationStatus.ACTIVE.value:
                return
            raise ValidationError({"suborder_id": ["Suborder already holds a reservation on this variant"]})
        if quantity > self.available_stock:
            raise InsufficientStockError(
                {"stock": [f"Cannot reserve {quantity} of {self.variant_id}. Available: {self.available_stock}"]}
            )

        now = datetime.now(UTC)
        with atomic_change(self):
            self.available_stock = self.available_stock - quantity
            self.reserved_stock = self.reserved_stock + quantity
            self.add_reservations(
                StockReservation(
                    suborder_id=suborder_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    reserved_at=now,
                )
            )
            self.updated_at = now

        self.raise_(
            StockReserved(
                entry_id=str(self.id),
                suborder_id=str(suborder_id),
                quantity=quantity,
                available_stock=self.available_stock,
                reserved_stock=self.reserved_stock,
                reserved_at=now,
            )
        )

    def convert_to_sold(self, suborder_id):
        """Move a suborder's reserved units to sold. Returns the earnings.

        Returns 0.0 when there is no active reservation (already settled).
        """
        reservation = self.reservation_for(suborder_id)
        if reservation is None or reservation.status != ReservationStatus.ACTIVE.value:
            return 0.0

        now = datetime.now(UTC)
        earnings = round_money(reservation.unit_price * reservation.quantity)
        with atomic_change(self):
            self.reserved_stock = self.reserved_stock - reservation.quantity
            self.sold_count = self.sold_count + reservation.quantity
            self.total_earnings = round_money((self.total_earnings or 0.0) + earnings)
            reservation.status = ReservationStatus.SOLD.value
            reservation.settled_at = now
            self.updated_at = now

        self.raise_(
            ReservedStockSold(
                entry_id=str(self.id),
                suborder_id=str(suborder_id),
                quantity=reservation.quantity,
                earnings=earnings,
                sold_count=self.sold_count,
                sold_at=now,
            )
        )
        return earnings

    def release(self, suborder_id):
        """Return a suborder's reserved units to available.

        Returns the released quantity, 0 when nothing was active.
        """
        reservation = self.reservation_for(suborder_id)
        if reservation is None or reservation.status != ReservationStatus.ACTIVE.value:
            return 0

        now = datetime.now(UTC)
        with atomic_change(self):
            self.reserved_stock = self.reserved_stock - reservation.quantity
            self.available_stock = self.available_stock + reservation.quantity
            reservation.status = ReservationStatus.RELEASED.value
            reservation.settled_at = now
            self.updated_at = now

        self.raise_(
            ReservedStockReleased(
                entry_id=str(self.id),
                suborder_id=str(suborder_id),
                quantity=reservation.quantity,
                available_stock=self.available_stock,
                released_at=now,
            )
        )
        return reservation.quantity

    def return_sold(self, suborder_id):
        """Put the sold units of a cancelled, already paid suborder back on sale."""
        reservation = self.reservation_for(suborder_id)
        if reservation is None or reservation.status != ReservationStatus.SOLD.value:
            return 0

        now = datetime.now(UTC)
        refunded_earnings = round_money(reservation.unit_price * reservation.quantity)
        with atomic_change(self):
            self.sold_count = self.sold_count - reservation.quantity
            self.available_stock = self.available_stock + reservation.quantity
            self.total_earnings = round_money(max((self.total_earnings or 0.0) - refunded_earnings, 0.0))
            reservation.status = ReservationStatus.RETURNED.value
            reservation.settled_at = now
            self.updated_at = now

        self.raise_(
            SoldStockReturned(
                entry_id=str(self.id),
                suborder_id=str(suborder_id),
                quantity=reservation.quantity,
                available_stock=self.available_stock,
                returned_at=now,
            )
        )
        return reservation.quantity

    # -------------------------------------------------------------------
    # Restocking
    # -------------------------------------------------------------------
    def restock(self, quantity, notes=None):
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Restock quantity must be positive"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.initial_stock = self.initial_stock + quantity
            self.available_stock = self.available_stock + quantity
            self.add_restocks(RestockRecord(quantity=quantity, notes=notes, restocked_at=now))
            self.last_restocked_at = now
            self.updated_at = now

        self.raise_(
            VariantRestocked(
                entry_id=str(self.id),
                product_id=str(self.product_id),
                variant_id=str(self.variant_id),
                quantity=quantity,
                initial_stock=self.initial_stock,
                available_stock=self.available_stock,
                notes=notes,
                restocked_at=now,
            )
        )
