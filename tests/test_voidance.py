from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice.core import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PurchaseManager,
    SaleLineInput,
    SalesManager,
    UnitLedger,
    VoidanceManager,
)
from backoffice.data.models import ExpenseState, SaleState, UnitState
from backoffice.data.repository import PayableRepository, ReceivableRepository

PAY_DAY = date(2024, 4, 2)


def _sell(session, catalog, *units, precio=350):
    return SalesManager(session).create_sale(
        cliente_id=catalog.customer.id,
        lines=[SaleLineInput(unidad_id=u.id, precio_venta=precio) for u in units],
        fecha_pedido=date(2024, 3, 1),
    )


def _vm(session, day=PAY_DAY):
    return VoidanceManager(session, today=lambda: day)


def test_void_returns_units_to_stock(session, catalog, add_units):
    u1, u2 = add_units(200, 100)
    result = _sell(session, catalog, u1, u2)
    session.refresh(catalog.order)
    assert catalog.order.total == Decimal("0")

    sale = _vm(session).void_sale(result.sale_id)
    assert sale.lifecycle is SaleState.ANULADA
    assert sale.fecha_anulacion is not None
    assert sale.fecha_anulacion.date() == date.today()

    session.refresh(u1)
    session.refresh(u2)
    assert u1.state is UnitState.EN_STOCK
    assert u2.state is UnitState.EN_STOCK
    session.refresh(catalog.order)
    assert catalog.order.total == Decimal("300")

    # Líneas y cuenta por cobrar se conservan
    assert len(sale.lines) == 2
    receivable = ReceivableRepository(session).get_by_sale(sale.id)
    assert receivable.monto == Decimal("700")


def test_void_twice_rejected(session, catalog, add_units):
    (unit,) = add_units(200)
    result = _sell(session, catalog, unit)
    vm = _vm(session)
    vm.void_sale(result.sale_id)
    with pytest.raises(InvalidStateError):
        vm.void_sale(result.sale_id)
    with pytest.raises(NotFoundError):
        vm.void_sale(9999)


def test_voided_unit_can_be_sold_again(session, catalog, add_units):
    (unit,) = add_units(200)
    first = _sell(session, catalog, unit)
    _vm(session).void_sale(first.sale_id)

    second = _sell(session, catalog, unit, precio=400)
    session.refresh(unit)
    assert unit.state is UnitState.VENDIDO
    assert second.total == Decimal("400.00")


def test_recover_round_trip(session, catalog, add_units):
    (unit,) = add_units(200)
    result = _sell(session, catalog, unit)
    vm = _vm(session)
    vm.void_sale(result.sale_id)

    sale = vm.recover_sale(result.sale_id)
    assert sale.lifecycle is SaleState.ACTIVA
    assert sale.fecha_anulacion is None
    session.refresh(unit)
    assert unit.state is UnitState.VENDIDO
    session.refresh(catalog.order)
    assert catalog.order.total == Decimal("0")


def test_recover_requires_voided_sale(session, catalog, add_units):
    (unit,) = add_units(200)
    result = _sell(session, catalog, unit)
    with pytest.raises(InvalidStateError):
        _vm(session).recover_sale(result.sale_id)


def test_recover_conflicts_when_unit_was_resold(session, catalog, add_units):
    (unit,) = add_units(200)
    first = _sell(session, catalog, unit)
    vm = _vm(session)
    vm.void_sale(first.sale_id)
    _sell(session, catalog, unit, precio=400)

    with pytest.raises(ConflictError):
        vm.recover_sale(first.sale_id)
    sale = SalesManager(session).get_sale(first.sale_id)
    assert sale.lifecycle is SaleState.ANULADA


def test_eliminated_units_skipped_on_void_and_recover(session, catalog, add_units):
    u1, u2 = add_units(200, 100)
    result = _sell(session, catalog, u1, u2)
    UnitLedger(session).update_unit(u1.id, new_state="eliminado")
    vm = _vm(session)

    vm.void_sale(result.sale_id)
    session.refresh(u1)
    session.refresh(u2)
    assert u1.state is UnitState.ELIMINADO
    assert u2.state is UnitState.EN_STOCK

    vm.recover_sale(result.sale_id)
    session.refresh(u1)
    session.refresh(u2)
    assert u1.state is UnitState.ELIMINADO
    assert u2.state is UnitState.VENDIDO


def test_sale_payment_mirrors_receivable(session, catalog, add_units):
    (unit,) = add_units(200)
    result = _sell(session, catalog, unit)
    receivables = ReceivableRepository(session)

    sale = _vm(session).mark_sale_paid(result.sale_id)
    assert sale.pagado is True
    assert sale.fecha_pago == PAY_DAY
    receivable = receivables.get_by_sale(result.sale_id)
    assert receivable.cobrado is True
    assert receivable.fecha_cobro == PAY_DAY

    # Pagar de nuevo conserva la fecha original
    sale = _vm(session, date(2024, 5, 1)).mark_sale_paid(result.sale_id)
    assert sale.fecha_pago == PAY_DAY

    sale = _vm(session).mark_sale_unpaid(result.sale_id)
    assert sale.pagado is False
    assert sale.fecha_pago is None
    session.refresh(receivable)
    assert receivable.cobrado is False
    assert receivable.fecha_cobro is None


def test_expense_payment_mirrors_payable(session, catalog):
    expense = PurchaseManager(session).create_expense(
        descripcion="Alquiler local",
        monto="1200",
        fecha=date(2024, 3, 5),
        categoria="alquiler",
        fecha_vencimiento=date(2024, 3, 10),
    )
    payables = PayableRepository(session)
    payable = payables.get_by_expense(expense.id)
    assert payable.monto == Decimal("1200")
    assert payable.fecha_vencimiento == date(2024, 3, 10)

    expense = _vm(session).mark_expense_paid(expense.id)
    assert expense.pagado is True
    assert expense.fecha_pago == PAY_DAY
    session.refresh(payable)
    assert payable.pagado is True
    assert payable.fecha_pago == PAY_DAY

    expense = _vm(session).mark_expense_unpaid(expense.id)
    assert expense.fecha_pago is None
    session.refresh(payable)
    assert payable.pagado is False
    assert payable.fecha_pago is None

    with pytest.raises(NotFoundError):
        _vm(session).mark_expense_paid(9999)


def test_delete_and_recover_expense(session, catalog):
    pm = PurchaseManager(session)
    expense = pm.create_expense(descripcion="Luz", monto=80, fecha=date(2024, 3, 5))
    vm = _vm(session)
    vm.mark_expense_paid(expense.id)

    expense = vm.delete_expense(expense.id)
    assert expense.lifecycle is ExpenseState.ELIMINADO
    assert expense.pagado is True
    assert expense.id not in {e.id for e in pm.list_expenses()}
    assert expense.id in {e.id for e in pm.list_expenses(incluir_eliminados=True)}

    expense = vm.recover_expense(expense.id)
    assert expense.lifecycle is ExpenseState.VIGENTE
    assert expense.id in {e.id for e in pm.list_expenses()}
