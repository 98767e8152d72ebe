from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from backoffice.data.models import Expense, Payable, SupplierOrder
from backoffice.data.repository import (
    ExpenseRepository,
    PayableRepository,
    SupplierOrderRepository,
)
from backoffice.utils.money import q2
from .errors import NotFoundError
from .unit_of_work import atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecomputeResult:
    """Valores que un recálculo deja en pedido, egreso y cuenta por pagar."""
    order_id: int
    order_total: Decimal
    expense_amount: Optional[Decimal] = None
    payable_amount: Optional[Decimal] = None


class OrderAggregator:
    """
    Recalcula el total de un pedido a proveedor como la suma de costos de sus
    unidades en_stock, y lo propaga al egreso y a la cuenta por pagar ligados.
    Las tres escrituras ocurren en una misma transacción.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.orders = SupplierOrderRepository(session)
        self.expenses = ExpenseRepository(session)
        self.payables = PayableRepository(session)

    # -----------------------------
    # Helpers
    # -----------------------------
    def _targets(self, order_id: int) -> Tuple[SupplierOrder, Optional[Expense], Optional[Payable]]:
        # autoflush está apagado: los cambios de unidades deben llegar a la BD antes del SUM
        self.session.flush()
        order = self.orders.get(order_id, for_update=True)
        if order is None:
            raise NotFoundError(f"Pedido id={order_id} no existe")
        expense = self.expenses.get_by_order(order_id)
        payable = self.payables.get_for_order(order_id, expense.id if expense else None)
        return order, expense, payable

    def _recompute(self, order_id: int) -> RecomputeResult:
        order, expense, payable = self._targets(order_id)
        total = q2(self.orders.in_stock_cost(order_id))
        result = RecomputeResult(
            order_id=order_id,
            order_total=total,
            expense_amount=total if expense is not None else None,
            payable_amount=total if payable is not None else None,
        )
        order.total = result.order_total
        if expense is not None:
            expense.monto = result.expense_amount
        if payable is not None:
            payable.monto = result.payable_amount
        self.session.flush()
        logger.info(
            "Pedido %s recalculado: total=%s egreso=%s cxp=%s",
            order_id, result.order_total, result.expense_amount, result.payable_amount,
        )
        return result

    # -----------------------------
    # API pública
    # -----------------------------
    def compute(self, order_id: int) -> RecomputeResult:
        """Calcula el resultado del recálculo sin escribir nada."""
        _, expense, payable = self._targets(order_id)
        total = q2(self.orders.in_stock_cost(order_id))
        return RecomputeResult(
            order_id=order_id,
            order_total=total,
            expense_amount=total if expense is not None else None,
            payable_amount=total if payable is not None else None,
        )

    def recompute(self, order_id: int, *, commit: bool = True) -> RecomputeResult:
        """
        Calcula y aplica el total del pedido. Idempotente.
        commit=False cuando el llamador ya abrió la transacción (alta de unidad,
        venta, anulación); el recálculo queda dentro de ella.
        """
        with atomic(self.session, commit=commit):
            return self._recompute(order_id)

    def recompute_many(self, order_ids: Iterable[int], *, commit: bool = True) -> List[RecomputeResult]:
        """Recalcula varios pedidos (orden ascendente de id para bloquear siempre igual)."""
        with atomic(self.session, commit=commit):
            return [self._recompute(oid) for oid in sorted(set(order_ids))]
