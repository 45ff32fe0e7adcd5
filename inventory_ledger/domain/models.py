from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, ForeignKey, CheckConstraint
from datetime import datetime
from enum import Enum


class Base(DeclarativeBase):
    pass


class InventoryItem(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_inventory_available_non_negative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("total_quantity >= 0", name="ck_inventory_total_non_negative"),
    )

    product_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    available_quantity: Mapped[int] = mapped_column(Integer, default=0, index=True)
    reserved_quantity: Mapped[int] = mapped_column(Integer, default=0)
    total_quantity: Mapped[int] = mapped_column(Integer, default=0)
    warehouse_location: Mapped[str] = mapped_column(String(100), index=True)
    # Epoch milliseconds, never moves backwards
    last_updated_timestamp: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"InventoryItem(product_id={self.product_id!r}, available={self.available_quantity}, "
            f"reserved={self.reserved_quantity}, total={self.total_quantity}, "
            f"warehouse={self.warehouse_location!r})"
        )


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    RELEASED = "RELEASED"


class Reservation(Base):
    __tablename__ = "reservations"
    reservation_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default=ReservationStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    items: Mapped[list["ReservationItem"]] = relationship(
        "ReservationItem",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationItem.position",
        lazy="selectin",
    )


class ReservationItem(Base):
    __tablename__ = "reservation_items"
    id: Mapped[int] = mapped_column(primary_key=True)
    reservation_id: Mapped[str] = mapped_column(ForeignKey("reservations.reservation_id"), index=True)
    # Request order; compensation walks it backwards
    position: Mapped[int] = mapped_column(Integer)
    # No FK to inventory - a line may outlive a product record
    product_id: Mapped[str] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer)
    committed: Mapped[bool] = mapped_column(Boolean, default=False)
    reservation: Mapped[Reservation] = relationship("Reservation", back_populates="items")
