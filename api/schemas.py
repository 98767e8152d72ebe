from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field


# ---------- Generic ----------

class Message(BaseModel):
  message: str


# ---------- Suppliers ----------

class SupplierIn(BaseModel):
  razon_social: str
  ruc: str
  contacto: Optional[str] = None
  telefono: Optional[str] = None
  email: Optional[str] = None
  direccion: Optional[str] = None


class SupplierOut(SupplierIn):
  id: int
  activo: bool

  class Config:
    from_attributes = True


# ---------- Customers ----------

class CustomerIn(BaseModel):
  nombre: str
  documento: Optional[str] = None
  telefono: Optional[str] = None
  email: Optional[str] = None
  direccion: Optional[str] = None


class CustomerOut(CustomerIn):
  id: int

  class Config:
    from_attributes = True


# ---------- Phone models ----------

class PhoneModelIn(BaseModel):
  marca: str
  nombre: str
  almacenamiento: Optional[str] = None
  color: Optional[str] = None


class PhoneModelOut(PhoneModelIn):
  id: int
  activo: bool

  class Config:
    from_attributes = True


# ---------- Supplier orders ----------

class OrderCreate(BaseModel):
  proveedor_id: int
  numero_pedido: str
  fecha_pedido: Optional[date] = None
  fecha_entrega: Optional[date] = None
  fecha_vencimiento: Optional[date] = None  # vencimiento de la cuenta por pagar
  estado: str = "pendiente"
  generar_egreso: bool = True


class OrderOut(BaseModel):
  id: int
  proveedor_id: int
  numero_pedido: str
  fecha_pedido: date
  fecha_entrega: Optional[date] = None
  total: Decimal
  estado: str

  class Config:
    from_attributes = True


class RecomputeOut(BaseModel):
  order_id: int
  order_total: Decimal
  expense_amount: Optional[Decimal] = None
  payable_amount: Optional[Decimal] = None

  class Config:
    from_attributes = True


# ---------- Units ----------

class UnitCreate(BaseModel):
  pedido_id: int
  modelo_id: int
  imei: str
  imei2: Optional[str] = None
  costo: Decimal = Field(ge=0)
  fecha_ingreso: Optional[date] = None


class UnitUpdate(BaseModel):
  # Todos opcionales; solo se aplican los enviados
  imei: Optional[str] = None
  imei2: Optional[str] = None
  costo: Optional[Decimal] = Field(default=None, ge=0)
  fecha_ingreso: Optional[date] = None
  modelo_id: Optional[int] = None
  estado: Optional[str] = None  # solo 'eliminado'


class UnitOut(BaseModel):
  id: int
  imei: str
  imei2: Optional[str] = None
  costo: Decimal
  fecha_ingreso: date
  pedido_id: int
  modelo_id: int
  estado: str

  class Config:
    from_attributes = True


class UnitChangeOut(BaseModel):
  unit: UnitOut
  recompute: RecomputeOut

  class Config:
    from_attributes = True


class UnitBatchItem(BaseModel):
  imei: str
  imei2: Optional[str] = None
  costo: Decimal = Field(ge=0)


class UnitBatchCreate(BaseModel):
  pedido_id: int
  modelo_id: int
  fecha_ingreso: Optional[date] = None
  items: List[UnitBatchItem] = Field(min_length=1)


class UnitBatchOut(BaseModel):
  units: List[UnitOut]
  recompute: RecomputeOut

  class Config:
    from_attributes = True


class StockSummaryOut(BaseModel):
  modelo_id: int
  marca: str
  nombre: str
  cantidad: int
  costo_total: Decimal

  class Config:
    from_attributes = True


# ---------- Sales ----------

class SaleLineIn(BaseModel):
  unidad_id: int
  precio_venta: Decimal = Field(ge=0)


class SaleCreate(BaseModel):
  cliente_id: int
  fecha_pedido: Optional[date] = None
  fecha_vencimiento: Optional[date] = None
  lines: List[SaleLineIn]


class SaleCreated(BaseModel):
  sale_id: int
  total: Decimal


class SaleLineOut(BaseModel):
  id: int
  unidad_id: int
  precio_venta: Decimal
  costo: Decimal
  margen: Decimal

  class Config:
    from_attributes = True


class ReceivableOut(BaseModel):
  id: int
  monto: Decimal
  fecha_registro: date
  fecha_vencimiento: Optional[date] = None
  cobrado: bool
  fecha_cobro: Optional[date] = None

  class Config:
    from_attributes = True


class SaleOut(BaseModel):
  id: int
  cliente_id: int
  fecha_pedido: date
  monto_total: Decimal
  pagado: bool
  fecha_pago: Optional[date] = None
  anulado: bool
  fecha_anulacion: Optional[datetime] = None

  class Config:
    from_attributes = True


class SaleWithDetails(SaleOut):
  lines: list[SaleLineOut]
  receivable: ReceivableOut | None = None


# ---------- Expenses ----------

class ExpenseCreate(BaseModel):
  descripcion: str
  monto: Decimal = Field(ge=0)
  fecha: Optional[date] = None
  categoria: Optional[str] = None
  proveedor_id: Optional[int] = None
  fecha_vencimiento: Optional[date] = None


class PayableOut(BaseModel):
  id: int
  monto: Decimal
  fecha_vencimiento: Optional[date] = None
  pagado: bool
  fecha_pago: Optional[date] = None

  class Config:
    from_attributes = True


class ExpenseOut(BaseModel):
  id: int
  descripcion: str
  categoria: Optional[str] = None
  monto: Decimal
  fecha: date
  pedido_proveedor_id: Optional[int] = None
  pagado: bool
  fecha_pago: Optional[date] = None
  eliminado: bool
  payable: PayableOut | None = None

  class Config:
    from_attributes = True


# ---------- Reports ----------

class PeriodTotalsOut(BaseModel):
  periodo: str
  ingresos: Decimal
  egresos: Decimal
  utilidad: Decimal

  class Config:
    from_attributes = True


class RangeTotalsOut(BaseModel):
  desde: date
  hasta: date
  ingresos: Decimal
  egresos: Decimal
  utilidad: Decimal

  class Config:
    from_attributes = True


class DeltaOut(BaseModel):
  absoluta: Decimal
  porcentaje: Decimal | None = None

  class Config:
    from_attributes = True


class ComparisonOut(BaseModel):
  periodo_a: RangeTotalsOut
  periodo_b: RangeTotalsOut
  ingresos: DeltaOut
  egresos: DeltaOut
  utilidad: DeltaOut

  class Config:
    from_attributes = True


class SalesSummaryOut(BaseModel):
  desde: date
  hasta: date
  total: Decimal
  cantidad: int

  class Config:
    from_attributes = True


class MonthSalesOut(BaseModel):
  mes: str
  total: Decimal
  cantidad: int

  class Config:
    from_attributes = True


class MonthlySalesOut(BaseModel):
  periodos: list[MonthSalesOut]
