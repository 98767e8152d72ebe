from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice.core import (
    FinancialReporter,
    Granularity,
    PurchaseManager,
    SaleLineInput,
    SalesManager,
    ValidationError,
    VoidanceManager,
)
from backoffice.reports.pnl_report import pnl_csv, pnl_pdf


def seed_february(session, catalog, add_units):
    """
    Febrero 2024:
    - venta pagada 100 (cuenta), venta impaga 80 y venta pagada anulada 500 (no cuentan)
    - egreso pagado 40 (cuenta), egreso pagado eliminado 25 e impago 70 (no cuentan)
    """
    u1, u2, u3 = add_units(60, 50, 300)
    sm = SalesManager(session)
    vm = VoidanceManager(session, today=lambda: date(2024, 2, 28))

    def sell(unit, precio, dia):
        return sm.create_sale(
            cliente_id=catalog.customer.id,
            lines=[SaleLineInput(unidad_id=unit.id, precio_venta=precio)],
            fecha_pedido=date(2024, 2, dia),
        ).sale_id

    paid = sell(u1, 100, 15)
    vm.mark_sale_paid(paid)
    sell(u2, 80, 20)
    voided = sell(u3, 500, 25)
    vm.mark_sale_paid(voided)
    vm.void_sale(voided)

    pm = PurchaseManager(session)
    rent = pm.create_expense(descripcion="Alquiler", monto=40, fecha=date(2024, 2, 10))
    vm.mark_expense_paid(rent.id)
    dropped = pm.create_expense(descripcion="Duplicado", monto=25, fecha=date(2024, 2, 12))
    vm.mark_expense_paid(dropped.id)
    vm.delete_expense(dropped.id)
    pm.create_expense(descripcion="Internet", monto=70, fecha=date(2024, 2, 14))


def test_monthly_rollup_fills_every_period(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    rows = FinancialReporter(session).rollup(date(2024, 1, 1), date(2024, 3, 31), Granularity.MES)

    assert [r.periodo for r in rows] == ["2024-01", "2024-02", "2024-03"]
    jan, feb, mar = rows
    assert (feb.ingresos, feb.egresos, feb.utilidad) == (Decimal("100.00"), Decimal("40.00"), Decimal("60.00"))
    for r in (jan, mar):
        assert (r.ingresos, r.egresos, r.utilidad) == (Decimal("0"), Decimal("0"), Decimal("0"))


def test_daily_and_yearly_rollup(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    reporter = FinancialReporter(session)

    days = reporter.rollup(date(2024, 2, 1), date(2024, 2, 29), "dia")
    assert len(days) == 29
    by_day = {r.periodo: r for r in days}
    assert by_day["2024-02-15"].ingresos == Decimal("100.00")
    assert by_day["2024-02-10"].egresos == Decimal("40.00")
    assert by_day["2024-02-10"].utilidad == Decimal("-40.00")
    assert by_day["2024-02-20"].ingresos == Decimal("0")

    years = reporter.rollup(date(2023, 6, 1), date(2024, 12, 31), "year")
    assert [r.periodo for r in years] == ["2023", "2024"]
    assert years[1].utilidad == Decimal("60.00")


def test_range_edges_are_inclusive(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    totals = FinancialReporter(session).totals(date(2024, 2, 10), date(2024, 2, 15))
    assert totals.ingresos == Decimal("100.00")
    assert totals.egresos == Decimal("40.00")
    assert totals.utilidad == Decimal("60.00")


def test_rollup_rejects_bad_input(session):
    reporter = FinancialReporter(session)
    with pytest.raises(ValidationError):
        reporter.rollup(date(2024, 3, 1), date(2024, 2, 1))
    with pytest.raises(ValidationError):
        reporter.rollup(date(2024, 1, 1), date(2024, 2, 1), "semana")
    with pytest.raises(ValidationError):
        reporter.rollup(date(2020, 1, 1), date(2024, 1, 1), "dia")


def test_compare_periods(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    reporter = FinancialReporter(session)
    jan = (date(2024, 1, 1), date(2024, 1, 31))
    feb = (date(2024, 2, 1), date(2024, 2, 29))

    cmp = reporter.compare(jan, feb)
    assert cmp.periodo_b.ingresos == Decimal("100.00")
    assert cmp.ingresos.absoluta == Decimal("100.00")
    assert cmp.ingresos.porcentaje is None  # base en cero

    back = reporter.compare(feb, jan)
    assert back.utilidad.absoluta == Decimal("-60.00")
    assert back.utilidad.porcentaje == Decimal("-100.00")
    assert back.egresos.absoluta == Decimal("-40.00")


def test_sales_summary_counts_active_sales(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    summary = FinancialReporter(session).sales_summary(date(2024, 2, 1), date(2024, 2, 29))
    assert summary.total == Decimal("180.00")
    assert summary.cantidad == 2


def test_monthly_sales(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    months = FinancialReporter(session).monthly_sales("2024-01", "2024-03")
    assert [(m.mes, m.total, m.cantidad) for m in months] == [
        ("2024-01", Decimal("0"), 0),
        ("2024-02", Decimal("180.00"), 2),
        ("2024-03", Decimal("0"), 0),
    ]


@pytest.mark.parametrize(
    "desde,hasta",
    [
        ("2024/01", "2024-03"),
        ("2024-13", "2024-12"),
        ("2024-05", "2024-01"),
        ("2021-01", "2024-01"),
    ],
)
def test_monthly_sales_rejects_bad_ranges(session, desde, hasta):
    with pytest.raises(ValidationError):
        FinancialReporter(session).monthly_sales(desde, hasta)


def test_pnl_exports(session, catalog, add_units):
    seed_february(session, catalog, add_units)
    rows = FinancialReporter(session).rollup(date(2024, 1, 1), date(2024, 3, 31))

    lines = pnl_csv(rows).splitlines()
    assert lines[0] == "Periodo,Ingresos,Egresos,Utilidad"
    assert lines[2] == "2024-02,100.00,40.00,60.00"
    assert len(lines) == 4

    pdf = pnl_pdf(rows, desde=date(2024, 1, 1), hasta=date(2024, 3, 31), agrupacion="mes", empresa="Tienda")
    assert pdf.startswith(b"%PDF")
