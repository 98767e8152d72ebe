from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from backoffice.data.models import Receivable, Sale, SaleLine, UnitState
from backoffice.data.repository import (
    CustomerRepository,
    ReceivableRepository,
    SaleLineRepository,
    SaleRepository,
    UnitRepository,
)
from backoffice.utils.money import D, NumberLike, money_sum, q2
from .errors import InvalidStateError, NotFoundError, ValidationError
from .order_aggregator import OrderAggregator
from .unit_ledger import transition_unit_state
from .unit_of_work import atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleLineInput:
    """Línea de venta: una unidad y su precio de venta."""
    unidad_id: int
    precio_venta: NumberLike


@dataclass(frozen=True)
class SaleResult:
    sale_id: int
    total: Decimal


class SalesManager:
    """
    Registra ventas de unidades en una sola transacción:
    cabecera, líneas (costo congelado y margen), paso de unidades a vendido
    y cuenta por cobrar. Cualquier falla revierte todo; ninguna unidad queda
    medio vendida.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.customers = CustomerRepository(session)
        self.units = UnitRepository(session)
        self.sales = SaleRepository(session)
        self.sale_lines = SaleLineRepository(session)
        self.receivables = ReceivableRepository(session)
        self.aggregator = OrderAggregator(session)

    # -----------------------------
    # Validaciones internas
    # -----------------------------
    def _validate_customer(self, customer_id: int) -> None:
        if self.customers.get(customer_id) is None:
            raise NotFoundError(f"Cliente id={customer_id} no existe")

    @staticmethod
    def _validate_lines(lines: Iterable[SaleLineInput]) -> List[SaleLineInput]:
        """Devuelve las líneas con el precio ya redondeado a 2 decimales."""
        lines = list(lines)
        if not lines:
            raise ValidationError("La venta debe contener al menos una unidad")
        seen: Set[int] = set()
        cleaned: List[SaleLineInput] = []
        for ln in lines:
            if ln.unidad_id in seen:
                raise ValidationError(f"Unidad id={ln.unidad_id} repetida en la venta")
            seen.add(ln.unidad_id)
            if ln.precio_venta is None:
                raise ValidationError(f"Falta precio para unidad id={ln.unidad_id}")
            try:
                price = q2(D(ln.precio_venta))
            except ArithmeticError as exc:
                raise ValidationError(f"Precio inválido para unidad id={ln.unidad_id}") from exc
            if not price.is_finite() or price < 0:
                raise ValidationError(f"Precio inválido para unidad id={ln.unidad_id}")
            cleaned.append(SaleLineInput(unidad_id=ln.unidad_id, precio_venta=price))
        return cleaned

    # -----------------------------
    # API pública
    # -----------------------------
    def create_sale(
        self,
        *,
        cliente_id: int,
        lines: Iterable[SaleLineInput],
        fecha_pedido: Optional[date] = None,
        fecha_vencimiento: Optional[date] = None,
    ) -> SaleResult:
        fecha_pedido = fecha_pedido or date.today()
        lines = self._validate_lines(lines)
        total = money_sum(ln.precio_venta for ln in lines)

        with atomic(self.session):
            self._validate_customer(cliente_id)

            sale = Sale(
                cliente_id=cliente_id,
                fecha_pedido=fecha_pedido,
                monto_total=total,
                pagado=False,
                anulado=False,
            )
            self.sales.add(sale)
            self.session.flush()  # obtener sale.id

            touched_orders: Set[int] = set()
            for ln in lines:
                unit = self.units.get(ln.unidad_id, for_update=True)
                if unit is None:
                    raise NotFoundError(f"Unidad id={ln.unidad_id} no existe")
                if unit.state is not UnitState.EN_STOCK:
                    raise InvalidStateError(
                        f"Unidad id={unit.id} (IMEI {unit.imei}) no está en stock (estado={unit.estado})"
                    )

                precio = ln.precio_venta
                costo = q2(unit.costo)
                self.sale_lines.add(
                    SaleLine(
                        venta_id=sale.id,
                        unidad_id=unit.id,
                        precio_venta=precio,
                        costo=costo,
                        margen=q2(precio - costo),
                    )
                )
                if not transition_unit_state(self.session, unit.id, UnitState.EN_STOCK, UnitState.VENDIDO):
                    raise InvalidStateError(
                        f"Unidad id={unit.id} (IMEI {unit.imei}) fue vendida por otra transacción"
                    )
                touched_orders.add(unit.pedido_id)

            self.receivables.add(
                Receivable(
                    venta_id=sale.id,
                    monto=total,
                    fecha_registro=fecha_pedido,
                    fecha_vencimiento=fecha_vencimiento,
                    cobrado=False,
                )
            )
            # El total del pedido solo cuenta unidades en_stock
            self.aggregator.recompute_many(touched_orders, commit=False)
            sale_id = sale.id

        logger.info("Venta %s registrada: %s unidades, total=%s", sale_id, len(lines), total)
        return SaleResult(sale_id=sale_id, total=total)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.sales.get(sale_id)
        if sale is None:
            raise NotFoundError(f"Venta id={sale_id} no existe")
        return sale

    def list_sales(
        self,
        *,
        desde: Optional[date] = None,
        hasta: Optional[date] = None,
        cliente_id: Optional[int] = None,
        incluir_anuladas: bool = True,
    ) -> List[Sale]:
        return self.sales.filter(
            desde=desde, hasta=hasta, cliente_id=cliente_id, incluir_anuladas=incluir_anuladas
        )
