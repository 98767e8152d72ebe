from __future__ import annotations

import enum
from datetime import date, datetime as dt
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


class Base(DeclarativeBase):
    """Base declarativa para todos los modelos."""
    pass


# ====================================================
# ESTADOS
# ====================================================
class UnitState(str, enum.Enum):
    EN_STOCK = "en_stock"
    VENDIDO = "vendido"
    ELIMINADO = "eliminado"


class SaleState(str, enum.Enum):
    ACTIVA = "activa"
    ANULADA = "anulada"


class ExpenseState(str, enum.Enum):
    VIGENTE = "vigente"
    ELIMINADO = "eliminado"


# ====================================================
# PROVEEDORES
# ====================================================
class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Razón social del proveedor (obligatoria)
    razon_social: Mapped[str] = mapped_column(String, nullable=False)

    # RUC de la empresa (único)
    ruc: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    contacto: Mapped[Optional[str]] = mapped_column(String)
    telefono: Mapped[Optional[str]] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String)
    direccion: Mapped[Optional[str]] = mapped_column(String)
    activo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    orders: Mapped[List["SupplierOrder"]] = relationship(back_populates="supplier")

    def __repr__(self) -> str:
        return f"<Supplier razon_social={self.razon_social} ruc={self.ruc}>"


# ====================================================
# CLIENTES
# ====================================================
class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String, nullable=False)
    # DNI / RUC (opcional, único si se informa)
    documento: Mapped[Optional[str]] = mapped_column(String, unique=True)
    telefono: Mapped[Optional[str]] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String)
    direccion: Mapped[Optional[str]] = mapped_column(String)

    sales: Mapped[List["Sale"]] = relationship(back_populates="customer")

    def __repr__(self) -> str:
        return f"<Customer id={self.id} nombre={self.nombre}>"


# ====================================================
# MODELOS DE EQUIPO
# ====================================================
class PhoneModel(Base):
    __tablename__ = "phone_models"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    marca: Mapped[str] = mapped_column(String, nullable=False)
    nombre: Mapped[str] = mapped_column(String, nullable=False)
    almacenamiento: Mapped[Optional[str]] = mapped_column(String)  # '128GB', '256GB'...
    color: Mapped[Optional[str]] = mapped_column(String)
    activo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<PhoneModel id={self.id} {self.marca} {self.nombre}>"


# ====================================================
# PEDIDOS A PROVEEDOR
# ====================================================
class SupplierOrder(Base):
    __tablename__ = "supplier_orders"
    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_supplier_orders_total_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proveedor_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    numero_pedido: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    fecha_pedido: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    fecha_entrega: Mapped[Optional[date]] = mapped_column(Date)
    # Derivado: suma de costos de sus unidades en_stock (solo lo escribe OrderAggregator)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    estado: Mapped[str] = mapped_column(String, nullable=False, default="pendiente")  # pendiente/recibido
    activo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    supplier: Mapped["Supplier"] = relationship(back_populates="orders")
    units: Mapped[List["Unit"]] = relationship(back_populates="order")

    def __repr__(self) -> str:
        return f"<SupplierOrder id={self.id} numero={self.numero_pedido} total={self.total}>"


# ====================================================
# UNIDADES (un equipo físico por IMEI)
# ====================================================
class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (
        CheckConstraint("costo >= 0", name="ck_units_costo_nonneg"),
        CheckConstraint(
            "estado IN ('en_stock', 'vendido', 'eliminado')", name="ck_units_estado_valido"
        ),
        CheckConstraint("length(trim(imei)) > 0", name="ck_units_imei_not_empty"),
        # IMEI único entre unidades no eliminadas (red de seguridad bajo la validación de app)
        Index(
            "uq_units_imei_vigente",
            "imei",
            unique=True,
            sqlite_where=text("estado <> 'eliminado'"),
            postgresql_where=text("estado <> 'eliminado'"),
        ),
        Index("idx_units_pedido_estado", "pedido_id", "estado"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    imei: Mapped[str] = mapped_column(String, nullable=False)
    imei2: Mapped[Optional[str]] = mapped_column(String)
    costo: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    fecha_ingreso: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    pedido_id: Mapped[int] = mapped_column(ForeignKey("supplier_orders.id"), nullable=False)
    modelo_id: Mapped[int] = mapped_column(ForeignKey("phone_models.id"), nullable=False)
    estado: Mapped[str] = mapped_column(String, nullable=False, default=UnitState.EN_STOCK.value)

    order: Mapped["SupplierOrder"] = relationship(back_populates="units")
    model: Mapped["PhoneModel"] = relationship()

    @property
    def state(self) -> UnitState:
        return UnitState(self.estado)

    def __repr__(self) -> str:
        return f"<Unit id={self.id} imei={self.imei} estado={self.estado} costo={self.costo}>"


# ====================================================
# EGRESOS / CUENTAS POR PAGAR
# ====================================================
class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("monto >= 0", name="ck_expenses_monto_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    descripcion: Mapped[str] = mapped_column(String, nullable=False)
    categoria: Mapped[Optional[str]] = mapped_column(String)  # 'pedido', 'alquiler', 'servicios'...
    monto: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    fecha: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    # Egreso autogenerado desde un pedido (1:1)
    pedido_proveedor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("supplier_orders.id"), unique=True, nullable=True
    )
    pagado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fecha_pago: Mapped[Optional[date]] = mapped_column(Date)
    eliminado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    order: Mapped[Optional["SupplierOrder"]] = relationship()
    payable: Mapped[Optional["Payable"]] = relationship(back_populates="expense", uselist=False)

    @property
    def lifecycle(self) -> ExpenseState:
        return ExpenseState.ELIMINADO if self.eliminado else ExpenseState.VIGENTE

    def __repr__(self) -> str:
        return f"<Expense id={self.id} monto={self.monto} pagado={self.pagado}>"


class Payable(Base):
    __tablename__ = "payables"
    __table_args__ = (
        CheckConstraint("monto >= 0", name="ck_payables_monto_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    egreso_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("expenses.id"), unique=True, nullable=True
    )
    # Cuenta ligada directamente a un pedido (sin egreso intermedio)
    pedido_proveedor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("supplier_orders.id"), unique=True, nullable=True
    )
    proveedor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("suppliers.id"), nullable=True)
    monto: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    fecha_vencimiento: Mapped[Optional[date]] = mapped_column(Date)
    pagado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fecha_pago: Mapped[Optional[date]] = mapped_column(Date)

    expense: Mapped[Optional["Expense"]] = relationship(back_populates="payable")

    def __repr__(self) -> str:
        return f"<Payable id={self.id} egreso={self.egreso_id} monto={self.monto}>"


# ====================================================
# VENTAS / CUENTAS POR COBRAR
# ====================================================
class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint("monto_total >= 0", name="ck_sales_total_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cliente_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False)
    fecha_pedido: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    monto_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    pagado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fecha_pago: Mapped[Optional[date]] = mapped_column(Date)
    anulado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fecha_anulacion: Mapped[Optional[dt]] = mapped_column(DateTime)

    customer: Mapped["Customer"] = relationship(back_populates="sales")
    lines: Mapped[List["SaleLine"]] = relationship(
        back_populates="sale", cascade="all, delete-orphan", order_by="SaleLine.id"
    )
    receivable: Mapped[Optional["Receivable"]] = relationship(
        back_populates="sale", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def lifecycle(self) -> SaleState:
        return SaleState.ANULADA if self.anulado else SaleState.ACTIVA

    def __repr__(self) -> str:
        return f"<Sale id={self.id} cliente={self.cliente_id} total={self.monto_total}>"


class SaleLine(Base):
    __tablename__ = "sale_lines"
    __table_args__ = (
        CheckConstraint("precio_venta >= 0", name="ck_sale_lines_precio_nonneg"),
        Index("idx_sale_lines_unidad", "unidad_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venta_id: Mapped[int] = mapped_column(ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    unidad_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False)
    precio_venta: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # Costo congelado al momento de la venta
    costo: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    margen: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    sale: Mapped["Sale"] = relationship(back_populates="lines")
    unit: Mapped["Unit"] = relationship()

    def __repr__(self) -> str:
        return f"<SaleLine venta={self.venta_id} unidad={self.unidad_id} margen={self.margen}>"


class Receivable(Base):
    __tablename__ = "receivables"
    __table_args__ = (
        CheckConstraint("monto >= 0", name="ck_receivables_monto_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venta_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    monto: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    fecha_registro: Mapped[date] = mapped_column(Date, nullable=False)
    fecha_vencimiento: Mapped[Optional[date]] = mapped_column(Date)
    cobrado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fecha_cobro: Mapped[Optional[date]] = mapped_column(Date)

    sale: Mapped["Sale"] = relationship(back_populates="receivable")

    def __repr__(self) -> str:
        return f"<Receivable venta={self.venta_id} monto={self.monto} cobrado={self.cobrado}>"
