from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice.core import (
    InvalidStateError,
    NotFoundError,
    SaleLineInput,
    SalesManager,
    UnitLedger,
    ValidationError,
)
from backoffice.core.unit_ledger import transition_unit_state
from backoffice.data import database as db
from backoffice.data.models import Receivable, Sale, SaleLine, Unit, UnitState
from backoffice.data.repository import ReceivableRepository


def _count(session, model):
    return session.query(model).count()


def test_sale_freezes_cost_and_margin(session, catalog, add_units):
    (unit,) = add_units(200)
    sm = SalesManager(session)

    result = sm.create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=unit.id, precio_venta="350")],
        fecha_pedido=date(2024, 3, 1),
        fecha_vencimiento=date(2024, 3, 31),
    )
    assert result.total == Decimal("350.00")

    sale = sm.get_sale(result.sale_id)
    assert sale.monto_total == Decimal("350")
    assert sale.pagado is False
    assert sale.anulado is False
    assert len(sale.lines) == 1
    line = sale.lines[0]
    assert line.precio_venta == Decimal("350")
    assert line.costo == Decimal("200")
    assert line.margen == Decimal("150")

    session.refresh(unit)
    assert unit.state is UnitState.VENDIDO

    receivable = ReceivableRepository(session).get_by_sale(sale.id)
    assert receivable.monto == Decimal("350")
    assert receivable.fecha_registro == date(2024, 3, 1)
    assert receivable.fecha_vencimiento == date(2024, 3, 31)
    assert receivable.cobrado is False


def test_line_cost_stays_frozen_after_unit_edit(session, catalog, add_units):
    (unit,) = add_units(200)
    result = SalesManager(session).create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=unit.id, precio_venta=350)],
    )
    UnitLedger(session).update_unit(unit.id, {"costo": 999})

    line = session.query(SaleLine).filter(SaleLine.venta_id == result.sale_id).one()
    assert line.costo == Decimal("200")
    assert line.margen == Decimal("150")


def test_sold_units_leave_order_total(session, catalog, add_units):
    u1, u2 = add_units(500, 300)
    SalesManager(session).create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=u1.id, precio_venta=700)],
    )
    session.refresh(catalog.order)
    assert catalog.order.total == Decimal("300")


def test_sale_is_atomic_when_a_unit_is_not_in_stock(session, catalog, add_units):
    u1, u2 = add_units(100, 150)
    sm = SalesManager(session)
    sm.create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=u2.id, precio_venta=200)],
    )
    sales_before = _count(session, Sale)

    with pytest.raises(InvalidStateError) as exc:
        sm.create_sale(
            cliente_id=catalog.customer.id,
            lines=[
                SaleLineInput(unidad_id=u1.id, precio_venta=180),
                SaleLineInput(unidad_id=u2.id, precio_venta=250),
            ],
        )
    assert u2.imei in str(exc.value)

    # Nada quedó escrito: la primera unidad sigue en stock
    assert _count(session, Sale) == sales_before
    assert _count(session, SaleLine) == 1
    assert _count(session, Receivable) == 1
    session.refresh(u1)
    assert u1.state is UnitState.EN_STOCK


def test_eliminated_unit_cannot_be_sold(session, catalog, add_units):
    (unit,) = add_units(100)
    UnitLedger(session).update_unit(unit.id, new_state="eliminado")
    with pytest.raises(InvalidStateError):
        SalesManager(session).create_sale(
            cliente_id=catalog.customer.id,
            lines=[SaleLineInput(unidad_id=unit.id, precio_venta=100)],
        )
    assert _count(session, Sale) == 0


def test_sale_input_validation(session, catalog, add_units):
    (unit,) = add_units(100)
    sm = SalesManager(session)

    with pytest.raises(ValidationError):
        sm.create_sale(cliente_id=catalog.customer.id, lines=[])
    with pytest.raises(ValidationError):
        sm.create_sale(
            cliente_id=catalog.customer.id,
            lines=[
                SaleLineInput(unidad_id=unit.id, precio_venta=100),
                SaleLineInput(unidad_id=unit.id, precio_venta=120),
            ],
        )
    with pytest.raises(ValidationError):
        sm.create_sale(
            cliente_id=catalog.customer.id,
            lines=[SaleLineInput(unidad_id=unit.id, precio_venta=-5)],
        )
    with pytest.raises(ValidationError):
        sm.create_sale(
            cliente_id=catalog.customer.id,
            lines=[SaleLineInput(unidad_id=unit.id, precio_venta=None)],
        )
    with pytest.raises(NotFoundError):
        sm.create_sale(cliente_id=9999, lines=[SaleLineInput(unidad_id=unit.id, precio_venta=100)])
    with pytest.raises(NotFoundError):
        sm.create_sale(cliente_id=catalog.customer.id, lines=[SaleLineInput(unidad_id=9999, precio_venta=100)])

    assert _count(session, Sale) == 0
    session.refresh(unit)
    assert unit.state is UnitState.EN_STOCK


def test_guarded_transition_reports_lost_race(session, catalog, add_units):
    (unit,) = add_units(100)
    assert transition_unit_state(session, unit.id, UnitState.EN_STOCK, UnitState.VENDIDO) is True
    # Segundo intento con el mismo estado esperado: 0 filas
    assert transition_unit_state(session, unit.id, UnitState.EN_STOCK, UnitState.VENDIDO) is False
    session.rollback()


def test_list_sales_filters(session, catalog, add_units):
    u1, u2 = add_units(100, 150)
    sm = SalesManager(session)
    s1 = sm.create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=u1.id, precio_venta=200)],
        fecha_pedido=date(2024, 1, 20),
    )
    s2 = sm.create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=u2.id, precio_venta=300)],
        fecha_pedido=date(2024, 2, 20),
    )

    assert [s.id for s in sm.list_sales()] == [s2.sale_id, s1.sale_id]
    assert [s.id for s in sm.list_sales(desde=date(2024, 2, 1))] == [s2.sale_id]
    assert [s.id for s in sm.list_sales(hasta=date(2024, 1, 31))] == [s1.sale_id]
    assert sm.list_sales(cliente_id=9999) == []
    with pytest.raises(NotFoundError):
        sm.get_sale(9999)


def test_total_matches_rounded_line_prices(session, catalog, add_units):
    u1, u2 = add_units(1, 1)
    sm = SalesManager(session)
    result = sm.create_sale(
        cliente_id=catalog.customer.id,
        lines=[
            SaleLineInput(unidad_id=u1.id, precio_venta="0.005"),
            SaleLineInput(unidad_id=u2.id, precio_venta="0.005"),
        ],
    )

    sale = sm.get_sale(result.sale_id)
    assert [ln.precio_venta for ln in sale.lines] == [Decimal("0.01"), Decimal("0.01")]
    assert result.total == Decimal("0.02")
    assert sale.monto_total == sum(ln.precio_venta for ln in sale.lines)
    assert ReceivableRepository(session).get_by_sale(sale.id).monto == result.total


@pytest.mark.parametrize("precio", [Decimal("NaN"), float("nan"), "Infinity"])
def test_non_finite_price_rejected(session, catalog, add_units, precio):
    (unit,) = add_units(100)
    with pytest.raises(ValidationError):
        SalesManager(session).create_sale(
            cliente_id=catalog.customer.id,
            lines=[SaleLineInput(unidad_id=unit.id, precio_venta=precio)],
        )
    assert _count(session, Sale) == 0


def test_concurrent_sale_of_same_unit_sells_once(session, catalog, add_units):
    (unit,) = add_units(100)
    other = db.new_session()
    try:
        # La segunda sesión ve la unidad en_stock antes de la primera venta
        assert other.get(Unit, unit.id).state is UnitState.EN_STOCK

        SalesManager(session).create_sale(
            cliente_id=catalog.customer.id,
            lines=[SaleLineInput(unidad_id=unit.id, precio_venta=150)],
        )

        with pytest.raises(InvalidStateError):
            SalesManager(other).create_sale(
                cliente_id=catalog.customer.id,
                lines=[SaleLineInput(unidad_id=unit.id, precio_venta=140)],
            )
    finally:
        other.close()

    assert _count(session, Sale) == 1
    assert _count(session, SaleLine) == 1
    assert _count(session, Receivable) == 1
    session.refresh(unit)
    assert unit.state is UnitState.VENDIDO
