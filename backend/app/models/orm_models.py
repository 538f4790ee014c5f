"""ORM Models for the Quote Engine — SQLAlchemy 2.0"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Numeric, DateTime, Integer,
    ForeignKey, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.config import DEFAULT_ORDER_STATUS, DEFAULT_PRODUCT_KIND, ORDER_STATUSES, PRODUCT_KINDS
from app.db import Base


def _in_list(column: str, values: list[str]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def gen_uuid():
    return str(uuid.uuid4())


# ── PRODUCTS ──────────────────────────────────────────────────────────────────
class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint(_in_list("kind", PRODUCT_KINDS), name="ck_product_kind"),
    )
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # Meaningful only for base materials and "simple" products
    unit_price: Mapped[float] = mapped_column(Numeric(14, 4), default=0)
    stock_quantity: Mapped[float] = mapped_column(Numeric(14, 4), default=0)
    is_base_material: Mapped[bool] = mapped_column(Boolean, default=False)
    kind: Mapped[str] = mapped_column(String(20), default=DEFAULT_PRODUCT_KIND)  # simple | computed
    required_quantity: Mapped[float] = mapped_column(Numeric(14, 4), default=1)
    margin_pct: Mapped[Optional[float]] = mapped_column(Numeric(6, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    dependencies: Mapped[list["Dependency"]] = relationship(
        "Dependency", foreign_keys="Dependency.parent_id", back_populates="parent"
    )


# ── BOM EDGES ─────────────────────────────────────────────────────────────────
# Acyclicity is not enforced here; dependency_guard must run before every write.
class Dependency(Base):
    __tablename__ = "product_dependencies"
    __table_args__ = (
        UniqueConstraint("parent_id", "child_id", name="uq_dependency_pair"),
        CheckConstraint("parent_id <> child_id", name="ck_dependency_no_self_loop"),
        Index("ix_dependency_parent", "parent_id"),
    )
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    parent_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    child_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    quantity_per_unit: Mapped[float] = mapped_column(Numeric(14, 4), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    parent: Mapped["Product"] = relationship("Product", foreign_keys=[parent_id], back_populates="dependencies")
    child: Mapped["Product"] = relationship("Product", foreign_keys=[child_id])


# ── PROCESS & LABOR CATALOGS ──────────────────────────────────────────────────
class ProcessType(Base):
    __tablename__ = "process_types"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_per_unit: Mapped[float] = mapped_column(Numeric(14, 4), default=0)
    estimated_minutes: Mapped[float] = mapped_column(Numeric(10, 2), default=0)


class LaborType(Base):
    __tablename__ = "labor_types"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # e.g. fabrication, design
    price_per_hour: Mapped[float] = mapped_column(Numeric(14, 4), default=0)


# ── ORDERS ────────────────────────────────────────────────────────────────────
class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(_in_list("status", ORDER_STATUSES), name="ck_order_status"),
    )
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    quantity: Mapped[float] = mapped_column(Numeric(14, 4), nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(30), default=DEFAULT_ORDER_STATUS)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    has_freight: Mapped[bool] = mapped_column(Boolean, default=False)
    freight_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    margin_pct: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    tax_pct: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    product: Mapped["Product"] = relationship("Product")
    processes: Mapped[list["OrderProcess"]] = relationship("OrderProcess", back_populates="order")
    labor: Mapped[list["OrderLabor"]] = relationship("OrderLabor", back_populates="order")
    extra_items: Mapped[list["OrderExtraItem"]] = relationship("OrderExtraItem", back_populates="order")
    taxes: Mapped[list["OrderTax"]] = relationship(
        "OrderTax", back_populates="order", order_by="OrderTax.position"
    )


class OrderProcess(Base):
    __tablename__ = "order_processes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    process_id: Mapped[str] = mapped_column(String(36), ForeignKey("process_types.id"), nullable=False)
    quantity: Mapped[float] = mapped_column(Numeric(14, 4), default=1)
    order: Mapped["Order"] = relationship("Order", back_populates="processes")


class OrderLabor(Base):
    __tablename__ = "order_labor"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    labor_id: Mapped[str] = mapped_column(String(36), ForeignKey("labor_types.id"), nullable=False)
    hours: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    order: Mapped["Order"] = relationship("Order", back_populates="labor")


class OrderExtraItem(Base):
    __tablename__ = "order_extra_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    value: Mapped[Optional[float]] = mapped_column(Numeric(14, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    order: Mapped["Order"] = relationship("Order", back_populates="extra_items")


# Named taxes applied one after another, in ``position`` order, on top of the quote total
class OrderTax(Base):
    __tablename__ = "order_taxes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)  # e.g. ISS, ICMS
    pct: Mapped[float] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    order: Mapped["Order"] = relationship("Order", back_populates="taxes")


# ── PRODUCT-LEVEL ROUTINGS (standalone product costing) ───────────────────────
class ProductProcess(Base):
    __tablename__ = "product_processes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    process_id: Mapped[str] = mapped_column(String(36), ForeignKey("process_types.id"), nullable=False)
    quantity: Mapped[float] = mapped_column(Numeric(14, 4), default=1)


class ProductLabor(Base):
    __tablename__ = "product_labor"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    labor_id: Mapped[str] = mapped_column(String(36), ForeignKey("labor_types.id"), nullable=False)
    hours: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
