from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from backoffice.data.models import Expense, Payable, SupplierOrder
from backoffice.data.repository import (
    ExpenseRepository,
    PayableRepository,
    SupplierOrderRepository,
    SupplierRepository,
)
from backoffice.utils.money import D, NumberLike, ZERO, q2
from .errors import DuplicateError, NotFoundError, ValidationError
from .unit_of_work import atomic

logger = logging.getLogger(__name__)


class PurchaseManager:
    """
    Alta de pedidos a proveedor y de egresos.

    Un pedido nace con total 0 y, si generar_egreso=True, con su egreso y su
    cuenta por pagar en 0; los montos los mantiene OrderAggregator a medida
    que entran o salen unidades.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.suppliers = SupplierRepository(session)
        self.orders = SupplierOrderRepository(session)
        self.expenses = ExpenseRepository(session)
        self.payables = PayableRepository(session)

    # -----------------------------
    # Validaciones internas
    # -----------------------------
    def _validate_supplier(self, supplier_id: int) -> None:
        supplier = self.suppliers.get(supplier_id)
        if supplier is None or not supplier.activo:
            raise NotFoundError(f"Proveedor id={supplier_id} no existe")

    # -----------------------------
    # Pedidos
    # -----------------------------
    def create_order(
        self,
        *,
        proveedor_id: int,
        numero_pedido: str,
        fecha_pedido: Optional[date] = None,
        fecha_entrega: Optional[date] = None,
        fecha_vencimiento: Optional[date] = None,
        estado: str = "pendiente",
        generar_egreso: bool = True,
    ) -> SupplierOrder:
        numero = (numero_pedido or "").strip()
        if not numero:
            raise ValidationError("Falta 'numero_pedido'")
        fecha_pedido = fecha_pedido or date.today()

        with atomic(self.session):
            self._validate_supplier(proveedor_id)
            if self.orders.get_by_numero(numero) is not None:
                raise DuplicateError(f"Número de pedido {numero} ya existe")

            order = SupplierOrder(
                proveedor_id=proveedor_id,
                numero_pedido=numero,
                fecha_pedido=fecha_pedido,
                fecha_entrega=fecha_entrega,
                total=ZERO,
                estado=estado,
                activo=True,
            )
            self.orders.add(order)
            self.session.flush()  # obtener order.id

            if generar_egreso:
                expense = Expense(
                    descripcion=f"Pedido {numero}",
                    categoria="pedido",
                    monto=ZERO,
                    fecha=fecha_pedido,
                    pedido_proveedor_id=order.id,
                )
                self.expenses.add(expense)
                self.session.flush()
                self.payables.add(
                    Payable(
                        egreso_id=expense.id,
                        proveedor_id=proveedor_id,
                        monto=ZERO,
                        fecha_vencimiento=fecha_vencimiento,
                    )
                )

        logger.info("Pedido %s creado (id=%s, egreso=%s)", numero, order.id, generar_egreso)
        return order

    def get_order(self, order_id: int) -> SupplierOrder:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Pedido id={order_id} no existe")
        return order

    def list_orders(self, *, proveedor_id: Optional[int] = None) -> List[SupplierOrder]:
        return self.orders.filter(proveedor_id=proveedor_id)

    # -----------------------------
    # Egresos manuales
    # -----------------------------
    def create_expense(
        self,
        *,
        descripcion: str,
        monto: NumberLike,
        fecha: Optional[date] = None,
        categoria: Optional[str] = None,
        proveedor_id: Optional[int] = None,
        fecha_vencimiento: Optional[date] = None,
    ) -> Expense:
        """Egreso suelto (alquiler, servicios...) con su cuenta por pagar."""
        descripcion = (descripcion or "").strip()
        if not descripcion:
            raise ValidationError("Falta 'descripcion'")
        try:
            amount = q2(D(monto))
        except ArithmeticError as exc:
            raise ValidationError(f"Monto inválido: {monto!r}") from exc
        if not amount.is_finite() or amount < 0:
            raise ValidationError(f"Monto inválido: {amount} (debe ser >= 0)")

        with atomic(self.session):
            if proveedor_id is not None:
                self._validate_supplier(proveedor_id)
            expense = Expense(
                descripcion=descripcion,
                categoria=categoria,
                monto=amount,
                fecha=fecha or date.today(),
            )
            self.expenses.add(expense)
            self.session.flush()
            self.payables.add(
                Payable(
                    egreso_id=expense.id,
                    proveedor_id=proveedor_id,
                    monto=amount,
                    fecha_vencimiento=fecha_vencimiento,
                )
            )

        logger.info("Egreso %s registrado por %s", expense.id, amount)
        return expense

    def get_expense(self, expense_id: int) -> Expense:
        expense = self.expenses.get(expense_id)
        if expense is None:
            raise NotFoundError(f"Egreso id={expense_id} no existe")
        return expense

    def list_expenses(
        self,
        *,
        desde: Optional[date] = None,
        hasta: Optional[date] = None,
        incluir_eliminados: bool = False,
    ) -> List[Expense]:
        return self.expenses.filter(desde=desde, hasta=hasta, incluir_eliminados=incluir_eliminados)
