"""
Reportes financieros de solo lectura.

- rollup(): ingresos / egresos / utilidad por día, mes o año, con todos los
  periodos del rango presentes (en cero si no hubo movimiento).
- compare(): dos periodos lado a lado con sus diferencias.
- sales_summary() / monthly_sales(): resumen de ventas activas por rango y por mes.

Ingresos = suma de precio_venta de las líneas de ventas pagadas y no anuladas,
agrupadas por la fecha de pedido de la venta. Egresos = suma del monto de
egresos pagados y no eliminados, agrupados por la fecha del egreso.
Rangos inclusivos en ambos extremos.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.data.models import Expense, Sale, SaleLine
from backoffice.utils.money import D, ZERO, pct_change, q2
from .errors import ValidationError

logger = logging.getLogger(__name__)

MAX_PERIODS = 400
MAX_MONTHS = 36

_YM_RE = re.compile(r"^(\d{4})-(\d{2})$")


class Granularity(str, enum.Enum):
    DIA = "dia"
    MES = "mes"
    ANIO = "anio"

    @classmethod
    def _missing_(cls, value):
        aliases = {"day": cls.DIA, "month": cls.MES, "year": cls.ANIO, "año": cls.ANIO}
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


@dataclass(frozen=True)
class PeriodTotals:
    periodo: str
    ingresos: Decimal
    egresos: Decimal
    utilidad: Decimal


@dataclass(frozen=True)
class RangeTotals:
    desde: date
    hasta: date
    ingresos: Decimal
    egresos: Decimal
    utilidad: Decimal


@dataclass(frozen=True)
class Delta:
    absoluta: Decimal
    porcentaje: Optional[Decimal]


@dataclass(frozen=True)
class Comparison:
    periodo_a: RangeTotals
    periodo_b: RangeTotals
    ingresos: Delta
    egresos: Delta
    utilidad: Delta


@dataclass(frozen=True)
class SalesSummary:
    desde: date
    hasta: date
    total: Decimal
    cantidad: int


@dataclass(frozen=True)
class MonthSales:
    mes: str
    total: Decimal
    cantidad: int


# -----------------------------
# Periodos
# -----------------------------
def period_key(d: date, granularity: Granularity) -> str:
    if granularity is Granularity.DIA:
        return d.isoformat()
    if granularity is Granularity.MES:
        return f"{d.year:04d}-{d.month:02d}"
    return f"{d.year:04d}"


def _next_month(y: int, m: int) -> Tuple[int, int]:
    return (y + 1, 1) if m == 12 else (y, m + 1)


def iter_periods(desde: date, hasta: date, granularity: Granularity) -> Iterator[str]:
    """Claves de periodo de desde a hasta (inclusive), en orden."""
    if granularity is Granularity.DIA:
        d = desde
        while d <= hasta:
            yield d.isoformat()
            d += timedelta(days=1)
    elif granularity is Granularity.MES:
        y, m = desde.year, desde.month
        while (y, m) <= (hasta.year, hasta.month):
            yield f"{y:04d}-{m:02d}"
            y, m = _next_month(y, m)
    else:
        for y in range(desde.year, hasta.year + 1):
            yield f"{y:04d}"


def parse_year_month(value: str) -> Tuple[int, int]:
    match = _YM_RE.match((value or "").strip())
    if not match:
        raise ValidationError(f"Formato inválido '{value}'. Usa YYYY-MM")
    y, m = int(match.group(1)), int(match.group(2))
    if not 1 <= m <= 12:
        raise ValidationError(f"Mes inválido en '{value}'")
    return y, m


def _check_range(desde: date, hasta: date) -> None:
    if desde is None or hasta is None:
        raise ValidationError("Faltan 'desde' y 'hasta'")
    if desde > hasta:
        raise ValidationError(f"Rango inválido: desde {desde} es posterior a hasta {hasta}")


class FinancialReporter:
    """Agregados de ventas y egresos para comparar periodos (estado de resultados simple)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # -----------------------------
    # Lecturas base
    # -----------------------------
    def _income_rows(self, desde: date, hasta: date) -> List[Tuple[date, Decimal]]:
        stmt = (
            select(Sale.fecha_pedido, func.sum(SaleLine.precio_venta))
            .join(SaleLine, SaleLine.venta_id == Sale.id)
            .where(
                Sale.pagado.is_(True),
                Sale.anulado.is_(False),
                Sale.fecha_pedido >= desde,
                Sale.fecha_pedido <= hasta,
            )
            .group_by(Sale.fecha_pedido)
        )
        return [(row[0], D(row[1])) for row in self.session.execute(stmt)]

    def _expense_rows(self, desde: date, hasta: date) -> List[Tuple[date, Decimal]]:
        stmt = (
            select(Expense.fecha, func.sum(Expense.monto))
            .where(
                Expense.pagado.is_(True),
                Expense.eliminado.is_(False),
                Expense.fecha >= desde,
                Expense.fecha <= hasta,
            )
            .group_by(Expense.fecha)
        )
        return [(row[0], D(row[1])) for row in self.session.execute(stmt)]

    # -----------------------------
    # API pública
    # -----------------------------
    def rollup(self, desde: date, hasta: date, granularity: Granularity | str = Granularity.MES) -> List[PeriodTotals]:
        _check_range(desde, hasta)
        try:
            granularity = Granularity(granularity)
        except ValueError as exc:
            raise ValidationError(f"Agrupación desconocida: {granularity}") from exc

        keys = []
        for key in iter_periods(desde, hasta, granularity):
            keys.append(key)
            if len(keys) > MAX_PERIODS:
                raise ValidationError(f"El rango excede {MAX_PERIODS} periodos; usa una agrupación mayor")

        ingresos: Dict[str, Decimal] = {k: ZERO for k in keys}
        egresos: Dict[str, Decimal] = {k: ZERO for k in keys}
        for d, amount in self._income_rows(desde, hasta):
            k = period_key(d, granularity)
            ingresos[k] = ingresos[k] + amount
        for d, amount in self._expense_rows(desde, hasta):
            k = period_key(d, granularity)
            egresos[k] = egresos[k] + amount

        out = [
            PeriodTotals(
                periodo=k,
                ingresos=q2(ingresos[k]),
                egresos=q2(egresos[k]),
                utilidad=q2(ingresos[k] - egresos[k]),
            )
            for k in keys
        ]
        logger.debug("Rollup %s..%s por %s: %s periodos", desde, hasta, granularity.value, len(out))
        return out

    def totals(self, desde: date, hasta: date) -> RangeTotals:
        _check_range(desde, hasta)
        ingresos = q2(sum((amount for _, amount in self._income_rows(desde, hasta)), Decimal(0)))
        egresos = q2(sum((amount for _, amount in self._expense_rows(desde, hasta)), Decimal(0)))
        return RangeTotals(
            desde=desde, hasta=hasta, ingresos=ingresos, egresos=egresos, utilidad=q2(ingresos - egresos)
        )

    def compare(self, periodo_a: Tuple[date, date], periodo_b: Tuple[date, date]) -> Comparison:
        """Compara periodo_b contra periodo_a (deltas = b - a)."""
        a = self.totals(*periodo_a)
        b = self.totals(*periodo_b)

        def _delta(x: Decimal, y: Decimal) -> Delta:
            return Delta(absoluta=q2(y - x), porcentaje=pct_change(x, y))

        return Comparison(
            periodo_a=a,
            periodo_b=b,
            ingresos=_delta(a.ingresos, b.ingresos),
            egresos=_delta(a.egresos, b.egresos),
            utilidad=_delta(a.utilidad, b.utilidad),
        )

    def sales_summary(self, desde: date, hasta: date) -> SalesSummary:
        """Total y cantidad de ventas no anuladas en el rango (pagadas o no)."""
        _check_range(desde, hasta)
        stmt = select(func.coalesce(func.sum(Sale.monto_total), 0), func.count(Sale.id)).where(
            Sale.anulado.is_(False),
            Sale.fecha_pedido >= desde,
            Sale.fecha_pedido <= hasta,
        )
        total, cantidad = self.session.execute(stmt).one()
        return SalesSummary(desde=desde, hasta=hasta, total=q2(total), cantidad=int(cantidad or 0))

    def monthly_sales(self, desde_mes: str, hasta_mes: str) -> List[MonthSales]:
        """Ventas activas por mes, de YYYY-MM a YYYY-MM inclusive (máximo 36 meses)."""
        y1, m1 = parse_year_month(desde_mes)
        y2, m2 = parse_year_month(hasta_mes)
        if (y1, m1) > (y2, m2):
            raise ValidationError(f"Rango inválido: {desde_mes} es posterior a {hasta_mes}")
        if (y2 - y1) * 12 + (m2 - m1) + 1 > MAX_MONTHS:
            raise ValidationError(f"El rango excede {MAX_MONTHS} meses")

        desde = date(y1, m1, 1)
        ny, nm = _next_month(y2, m2)
        hasta = date(ny, nm, 1) - timedelta(days=1)

        stmt = select(Sale.fecha_pedido, Sale.monto_total).where(
            Sale.anulado.is_(False),
            Sale.fecha_pedido >= desde,
            Sale.fecha_pedido <= hasta,
        )
        totals: Dict[str, Decimal] = {}
        counts: Dict[str, int] = {}
        for fecha, monto in self.session.execute(stmt):
            k = period_key(fecha, Granularity.MES)
            totals[k] = totals.get(k, Decimal(0)) + D(monto)
            counts[k] = counts.get(k, 0) + 1

        return [
            MonthSales(mes=k, total=q2(totals.get(k, ZERO)), cantidad=counts.get(k, 0))
            for k in iter_periods(desde, hasta, Granularity.MES)
        ]
