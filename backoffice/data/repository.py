from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from .models import (
    Base,
    Customer,
    Expense,
    Payable,
    PhoneModel,
    Receivable,
    Sale,
    SaleLine,
    Supplier,
    SupplierOrder,
    Unit,
    UnitState,
)

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Repositorio base con CRUD simple y helpers comunes."""
    def __init__(self, session: Session, model: Type[T]) -> None:
        self.session = session
        self.model = model

    def add(self, obj: T) -> T:
        """Agrega el objeto al Session (no hace commit)."""
        self.session.add(obj)
        return obj

    def get(self, id_: int, *, for_update: bool = False) -> Optional[T]:
        """Obtiene por PK (o None). for_update bloquea la fila donde el motor lo soporta."""
        return self.session.get(self.model, id_, with_for_update=for_update or None)

    def list(self, *, limit: int = 500) -> List[T]:
        """Lista registros del modelo, más recientes primero."""
        stmt = select(self.model).order_by(self.model.id.desc()).limit(limit)
        return list(self.session.scalars(stmt))


# ---------------------------
# Catálogos
# ---------------------------
class SupplierRepository(BaseRepository[Supplier]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Supplier)

    def search(self, q: str, *, limit: int = 100) -> List[Supplier]:
        """Busca por razón social, RUC, email o teléfono (case-insensitive)."""
        qn = f"%{q.lower().strip()}%"
        stmt = (
            select(Supplier)
            .where(Supplier.activo.is_(True))
            .where(
                or_(
                    Supplier.razon_social.ilike(qn),
                    Supplier.ruc.ilike(qn),
                    Supplier.email.ilike(qn),
                    Supplier.telefono.ilike(qn),
                )
            )
            .order_by(Supplier.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Customer)

    def search(self, q: str, *, limit: int = 100) -> List[Customer]:
        qn = f"%{q.lower().strip()}%"
        stmt = (
            select(Customer)
            .where(
                or_(
                    Customer.nombre.ilike(qn),
                    Customer.documento.ilike(qn),
                    Customer.email.ilike(qn),
                    Customer.telefono.ilike(qn),
                )
            )
            .order_by(Customer.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))


class PhoneModelRepository(BaseRepository[PhoneModel]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, PhoneModel)

    def get_active(self, id_: int) -> Optional[PhoneModel]:
        m = self.get(id_)
        return m if m is not None and m.activo else None

    def search(self, q: str, *, limit: int = 100) -> List[PhoneModel]:
        qn = f"%{q.lower().strip()}%"
        stmt = (
            select(PhoneModel)
            .where(PhoneModel.activo.is_(True))
            .where(or_(PhoneModel.marca.ilike(qn), PhoneModel.nombre.ilike(qn)))
            .order_by(PhoneModel.marca.asc(), PhoneModel.nombre.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))


# ---------------------------
# Pedidos / Unidades
# ---------------------------
class SupplierOrderRepository(BaseRepository[SupplierOrder]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, SupplierOrder)

    def get_active(self, id_: int, *, for_update: bool = False) -> Optional[SupplierOrder]:
        o = self.get(id_, for_update=for_update)
        return o if o is not None and o.activo else None

    def get_by_numero(self, numero_pedido: str) -> Optional[SupplierOrder]:
        stmt = select(SupplierOrder).where(SupplierOrder.numero_pedido == numero_pedido.strip())
        return self.session.scalars(stmt).first()

    def filter(self, *, proveedor_id: Optional[int] = None, limit: int = 500) -> List[SupplierOrder]:
        stmt = select(SupplierOrder).where(SupplierOrder.activo.is_(True))
        if proveedor_id is not None:
            stmt = stmt.where(SupplierOrder.proveedor_id == proveedor_id)
        return list(self.session.scalars(stmt.order_by(SupplierOrder.id.desc()).limit(limit)))

    def in_stock_cost(self, order_id: int) -> Decimal:
        """SUM(costo) de las unidades en_stock del pedido (0 si no hay)."""
        stmt = select(func.coalesce(func.sum(Unit.costo), 0)).where(
            Unit.pedido_id == order_id,
            Unit.estado == UnitState.EN_STOCK.value,
        )
        return self.session.scalar(stmt)


class UnitRepository(BaseRepository[Unit]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Unit)

    def get_live_by_imei(self, imei: str, *, exclude_id: Optional[int] = None) -> Optional[Unit]:
        """Unidad no eliminada con ese IMEI (trim)."""
        stmt = select(Unit).where(
            Unit.imei == imei.strip(),
            Unit.estado != UnitState.ELIMINADO.value,
        )
        if exclude_id is not None:
            stmt = stmt.where(Unit.id != exclude_id)
        return self.session.scalars(stmt).first()

    def filter(
        self,
        *,
        pedido_id: Optional[int] = None,
        estado: Optional[str] = None,
        q: Optional[str] = None,
        limit: int = 500,
    ) -> List[Unit]:
        stmt = select(Unit)
        if pedido_id is not None:
            stmt = stmt.where(Unit.pedido_id == pedido_id)
        if estado:
            stmt = stmt.where(Unit.estado == estado)
        if q:
            qn = f"%{q.strip()}%"
            stmt = stmt.where(or_(Unit.imei.ilike(qn), Unit.imei2.ilike(qn)))
        return list(self.session.scalars(stmt.order_by(Unit.id.desc()).limit(limit)))

    def stock_by_model(self, modelo_id: Optional[int] = None):
        """Filas (modelo_id, marca, nombre, cantidad, costo_total) de unidades en_stock por modelo."""
        stmt = (
            select(
                Unit.modelo_id,
                PhoneModel.marca,
                PhoneModel.nombre,
                func.count(Unit.id),
                func.coalesce(func.sum(Unit.costo), 0),
            )
            .join(PhoneModel, PhoneModel.id == Unit.modelo_id)
            .where(Unit.estado == UnitState.EN_STOCK.value)
        )
        if modelo_id is not None:
            stmt = stmt.where(Unit.modelo_id == modelo_id)
        stmt = stmt.group_by(Unit.modelo_id, PhoneModel.marca, PhoneModel.nombre)
        return self.session.execute(stmt.order_by(PhoneModel.marca.asc(), PhoneModel.nombre.asc())).all()


# ---------------------------
# Egresos / Cuentas por pagar
# ---------------------------
class ExpenseRepository(BaseRepository[Expense]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Expense)

    def get_by_order(self, order_id: int) -> Optional[Expense]:
        stmt = select(Expense).where(Expense.pedido_proveedor_id == order_id)
        return self.session.scalars(stmt).first()

    def filter(
        self,
        *,
        desde: Optional[date] = None,
        hasta: Optional[date] = None,
        incluir_eliminados: bool = False,
        limit: int = 500,
    ) -> List[Expense]:
        stmt = select(Expense)
        if desde is not None:
            stmt = stmt.where(Expense.fecha >= desde)
        if hasta is not None:
            stmt = stmt.where(Expense.fecha <= hasta)
        if not incluir_eliminados:
            stmt = stmt.where(Expense.eliminado.is_(False))
        return list(self.session.scalars(stmt.order_by(Expense.fecha.desc(), Expense.id.desc()).limit(limit)))


class PayableRepository(BaseRepository[Payable]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Payable)

    def get_by_expense(self, expense_id: int) -> Optional[Payable]:
        stmt = select(Payable).where(Payable.egreso_id == expense_id)
        return self.session.scalars(stmt).first()

    def get_for_order(self, order_id: int, expense_id: Optional[int] = None) -> Optional[Payable]:
        """Cuenta por pagar del pedido: vía su egreso o ligada directo al pedido."""
        if expense_id is not None:
            p = self.get_by_expense(expense_id)
            if p is not None:
                return p
        stmt = select(Payable).where(Payable.pedido_proveedor_id == order_id)
        return self.session.scalars(stmt).first()


# ---------------------------
# Ventas / Cuentas por cobrar
# ---------------------------
class SaleRepository(BaseRepository[Sale]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Sale)

    def filter(
        self,
        *,
        desde: Optional[date] = None,
        hasta: Optional[date] = None,
        cliente_id: Optional[int] = None,
        incluir_anuladas: bool = True,
        limit: int = 500,
    ) -> List[Sale]:
        stmt = select(Sale)
        if desde is not None:
            stmt = stmt.where(Sale.fecha_pedido >= desde)
        if hasta is not None:
            stmt = stmt.where(Sale.fecha_pedido <= hasta)
        if cliente_id is not None:
            stmt = stmt.where(Sale.cliente_id == cliente_id)
        if not incluir_anuladas:
            stmt = stmt.where(Sale.anulado.is_(False))
        return list(self.session.scalars(stmt.order_by(Sale.id.desc()).limit(limit)))


class SaleLineRepository(BaseRepository[SaleLine]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, SaleLine)

    def active_line_for_unit(self, unit_id: int, *, exclude_sale_id: Optional[int] = None) -> Optional[SaleLine]:
        """Línea de una venta NO anulada que contiene la unidad."""
        stmt = (
            select(SaleLine)
            .join(Sale, Sale.id == SaleLine.venta_id)
            .where(SaleLine.unidad_id == unit_id, Sale.anulado.is_(False))
        )
        if exclude_sale_id is not None:
            stmt = stmt.where(SaleLine.venta_id != exclude_sale_id)
        return self.session.scalars(stmt).first()


class ReceivableRepository(BaseRepository[Receivable]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Receivable)

    def get_by_sale(self, sale_id: int) -> Optional[Receivable]:
        stmt = select(Receivable).where(Receivable.venta_id == sale_id)
        return self.session.scalars(stmt).first()
