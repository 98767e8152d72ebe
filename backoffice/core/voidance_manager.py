from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional, Set

from sqlalchemy.orm import Session

from backoffice.data.models import Expense, Sale, SaleState, UnitState
from backoffice.data.repository import (
    ExpenseRepository,
    PayableRepository,
    ReceivableRepository,
    SaleLineRepository,
    SaleRepository,
    UnitRepository,
)
from .errors import ConflictError, InvalidStateError, NotFoundError
from .order_aggregator import OrderAggregator
from .unit_ledger import transition_unit_state
from .unit_of_work import atomic

logger = logging.getLogger(__name__)


class VoidanceManager:
    """
    Reversas y cambios de estado financiero:
      - anular / recuperar ventas (las unidades vuelven a en_stock / vendido)
      - marcar pagado / no pagado: venta <-> cuenta por cobrar, egreso <-> cuenta por pagar
      - eliminar / recuperar egresos (solo la marca `eliminado`)

    Cada transición escribe el registro principal y su registro espejo en la
    misma transacción, de modo que nunca discrepan.
    """

    def __init__(self, session: Session, *, today: Optional[Callable[[], date]] = None) -> None:
        self.session = session
        self.today = today or date.today
        self.sales = SaleRepository(session)
        self.sale_lines = SaleLineRepository(session)
        self.receivables = ReceivableRepository(session)
        self.units = UnitRepository(session)
        self.expenses = ExpenseRepository(session)
        self.payables = PayableRepository(session)
        self.aggregator = OrderAggregator(session)

    # -----------------------------
    # Helpers
    # -----------------------------
    def _get_sale(self, sale_id: int) -> Sale:
        sale = self.sales.get(sale_id, for_update=True)
        if sale is None:
            raise NotFoundError(f"Venta id={sale_id} no existe")
        return sale

    def _get_expense(self, expense_id: int) -> Expense:
        expense = self.expenses.get(expense_id, for_update=True)
        if expense is None:
            raise NotFoundError(f"Egreso id={expense_id} no existe")
        return expense

    def _set_sale_paid(self, sale: Sale, paid: bool) -> None:
        if paid:
            # Idempotente: si ya estaba pagada se conserva la fecha original
            when = sale.fecha_pago if sale.pagado and sale.fecha_pago else self.today()
        else:
            when = None
        sale.pagado = paid
        sale.fecha_pago = when
        receivable = self.receivables.get_by_sale(sale.id)
        if receivable is not None:
            receivable.cobrado = paid
            receivable.fecha_cobro = when

    def _set_expense_paid(self, expense: Expense, paid: bool) -> None:
        if paid:
            when = expense.fecha_pago if expense.pagado and expense.fecha_pago else self.today()
        else:
            when = None
        expense.pagado = paid
        expense.fecha_pago = when
        payable = self.payables.get_by_expense(expense.id)
        if payable is not None:
            payable.pagado = paid
            payable.fecha_pago = when

    # -----------------------------
    # Ventas
    # -----------------------------
    def void_sale(self, sale_id: int) -> Sale:
        """
        Anula la venta: marca anulado y devuelve sus unidades a en_stock.
        Líneas y cuenta por cobrar se conservan. Anular dos veces es InvalidStateError.
        """
        with atomic(self.session):
            sale = self._get_sale(sale_id)
            if sale.lifecycle is SaleState.ANULADA:
                raise InvalidStateError(f"Venta id={sale_id} ya está anulada")

            touched_orders: Set[int] = set()
            for line in sale.lines:
                unit = self.units.get(line.unidad_id, for_update=True)
                if unit.state is UnitState.ELIMINADO:
                    logger.warning(
                        "Venta %s: unidad %s eliminada, no vuelve a stock", sale_id, unit.id
                    )
                    continue
                if not transition_unit_state(self.session, unit.id, UnitState.VENDIDO, UnitState.EN_STOCK):
                    raise ConflictError(
                        f"Unidad id={unit.id} (IMEI {unit.imei}) no está vendida (estado={unit.estado})"
                    )
                touched_orders.add(unit.pedido_id)

            sale.anulado = True
            sale.fecha_anulacion = datetime.now()
            self.aggregator.recompute_many(touched_orders, commit=False)

        logger.info("Venta %s anulada", sale_id)
        return sale

    def recover_sale(self, sale_id: int) -> Sale:
        """
        Revierte la anulación: sus unidades vuelven a vendido.
        ConflictError si alguna unidad fue revendida en otra venta activa.
        """
        with atomic(self.session):
            sale = self._get_sale(sale_id)
            if sale.lifecycle is not SaleState.ANULADA:
                raise InvalidStateError(f"Venta id={sale_id} no está anulada")

            touched_orders: Set[int] = set()
            for line in sale.lines:
                unit = self.units.get(line.unidad_id, for_update=True)
                if unit.state is UnitState.ELIMINADO:
                    logger.warning(
                        "Venta %s: unidad %s eliminada, se omite al recuperar", sale_id, unit.id
                    )
                    continue
                other = self.sale_lines.active_line_for_unit(unit.id, exclude_sale_id=sale.id)
                if other is not None:
                    raise ConflictError(
                        f"Unidad id={unit.id} (IMEI {unit.imei}) fue revendida en la venta id={other.venta_id}"
                    )
                if not transition_unit_state(self.session, unit.id, UnitState.EN_STOCK, UnitState.VENDIDO):
                    raise ConflictError(
                        f"Unidad id={unit.id} (IMEI {unit.imei}) no está en stock (estado={unit.estado})"
                    )
                touched_orders.add(unit.pedido_id)

            sale.anulado = False
            sale.fecha_anulacion = None
            self.aggregator.recompute_many(touched_orders, commit=False)

        logger.info("Venta %s recuperada", sale_id)
        return sale

    def mark_sale_paid(self, sale_id: int) -> Sale:
        with atomic(self.session):
            sale = self._get_sale(sale_id)
            self._set_sale_paid(sale, True)
        logger.info("Venta %s marcada pagada", sale_id)
        return sale

    def mark_sale_unpaid(self, sale_id: int) -> Sale:
        with atomic(self.session):
            sale = self._get_sale(sale_id)
            self._set_sale_paid(sale, False)
        logger.info("Venta %s marcada no pagada", sale_id)
        return sale

    # -----------------------------
    # Egresos
    # -----------------------------
    def mark_expense_paid(self, expense_id: int) -> Expense:
        with atomic(self.session):
            expense = self._get_expense(expense_id)
            self._set_expense_paid(expense, True)
        logger.info("Egreso %s marcado pagado", expense_id)
        return expense

    def mark_expense_unpaid(self, expense_id: int) -> Expense:
        with atomic(self.session):
            expense = self._get_expense(expense_id)
            self._set_expense_paid(expense, False)
        logger.info("Egreso %s marcado no pagado", expense_id)
        return expense

    def delete_expense(self, expense_id: int) -> Expense:
        """Baja lógica: solo la marca `eliminado`; pago y cuenta por pagar intactos."""
        with atomic(self.session):
            expense = self._get_expense(expense_id)
            expense.eliminado = True
        logger.info("Egreso %s eliminado", expense_id)
        return expense

    def recover_expense(self, expense_id: int) -> Expense:
        with atomic(self.session):
            expense = self._get_expense(expense_id)
            expense.eliminado = False
        logger.info("Egreso %s recuperado", expense_id)
        return expense
