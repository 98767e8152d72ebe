from __future__ import annotations

from decimal import Decimal, getcontext, ROUND_HALF_UP
from typing import Iterable, Optional, Union


# Precisión alta para evitar redondeos intermedios.
# El contexto es por hilo: q2 fija su propio redondeo.
ctx = getcontext()
ctx.prec = 28
ctx.rounding = ROUND_HALF_UP


NumberLike = Union[str, int, float, Decimal]

ZERO = Decimal("0.00")


def D(value: NumberLike) -> Decimal:
    """
    Convierte entradas numéricas comunes a Decimal de forma segura.
    - float: vía repr para no arrastrar artefactos binarios
    - None: 0 (SUM() sin filas en algunos motores)
    """
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def q2(value: NumberLike) -> Decimal:
    """Redondea a 2 decimales con ROUND_HALF_UP."""
    return D(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[NumberLike]) -> Decimal:
    total = Decimal(0)
    for v in values:
        total += D(v)
    return q2(total)


def pct_change(base: NumberLike, actual: NumberLike) -> Optional[Decimal]:
    """Variación porcentual de base a actual; None si la base es 0."""
    b = D(base)
    if b == 0:
        return None
    return q2((D(actual) - b) * 100 / abs(b))


def fmt_money(value: NumberLike) -> str:
    """1234567.891 -> '1,234,567.89'."""
    return f"{q2(value):,.2f}"
