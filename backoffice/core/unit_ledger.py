from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.orm import Session

from backoffice.data.models import Unit, UnitState
from backoffice.data.repository import (
    PhoneModelRepository,
    SupplierOrderRepository,
    UnitRepository,
)
from backoffice.utils.money import D, NumberLike, q2
from .errors import DuplicateError, InvalidStateError, NotFoundError, ValidationError
from .order_aggregator import OrderAggregator, RecomputeResult
from .unit_of_work import atomic

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"imei", "imei2", "costo", "fecha_ingreso", "modelo_id"})


@dataclass(frozen=True)
class UnitChange:
    unit: Unit
    recompute: RecomputeResult


@dataclass(frozen=True)
class UnitInput:
    """Unidad a ingresar en un lote."""
    imei: str
    costo: NumberLike
    imei2: Optional[str] = None


@dataclass(frozen=True)
class UnitBatch:
    units: List[Unit]
    recompute: RecomputeResult


@dataclass(frozen=True)
class StockSummary:
    modelo_id: int
    marca: str
    nombre: str
    cantidad: int
    costo_total: Decimal


def transition_unit_state(session: Session, unit_id: int, expected: UnitState, target: UnitState) -> bool:
    """
    UPDATE condicionado al estado esperado. Devuelve False si otra transacción
    ya movió la unidad (0 filas afectadas); es el punto de control de concurrencia.
    """
    session.flush()
    stmt = (
        update(Unit)
        .where(Unit.id == unit_id, Unit.estado == expected.value)
        .values(estado=target.value)
    )
    return session.execute(stmt).rowcount == 1


class UnitLedger:
    """
    Alta y edición de unidades (un equipo por IMEI).

    Transiciones de estado:
      - en_stock -> vendido    solo SalesManager
      - vendido  -> en_stock   solo VoidanceManager (anulación)
      - en_stock|vendido -> eliminado   por edición; terminal
    Cada alta/edición recalcula el pedido dueño en la misma transacción.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.units = UnitRepository(session)
        self.orders = SupplierOrderRepository(session)
        self.models = PhoneModelRepository(session)
        self.aggregator = OrderAggregator(session)

    # -----------------------------
    # Validaciones internas
    # -----------------------------
    @staticmethod
    def _clean_imei(imei: Optional[str], field: str = "imei") -> str:
        value = (imei or "").strip()
        if not value:
            raise ValidationError(f"Falta '{field}'")
        return value

    @staticmethod
    def _clean_cost(costo: NumberLike) -> Decimal:
        if costo is None:
            raise ValidationError("Falta 'costo'")
        try:
            value = q2(D(costo))
        except ArithmeticError as exc:
            raise ValidationError(f"Costo inválido: {costo!r}") from exc
        if not value.is_finite() or value < 0:
            raise ValidationError(f"Costo inválido: {costo!r} (debe ser >= 0)")
        return value

    def _check_imei_free(self, imei: str, *, exclude_id: Optional[int] = None) -> None:
        other = self.units.get_live_by_imei(imei, exclude_id=exclude_id)
        if other is not None:
            raise DuplicateError(f"IMEI {imei} ya registrado en unidad id={other.id}")

    def _validate_model(self, modelo_id: int) -> None:
        if self.models.get_active(modelo_id) is None:
            raise NotFoundError(f"Modelo id={modelo_id} no existe o está inactivo")

    # -----------------------------
    # API pública
    # -----------------------------
    def get_unit(self, unit_id: int) -> Unit:
        unit = self.units.get(unit_id)
        if unit is None:
            raise NotFoundError(f"Unidad id={unit_id} no existe")
        return unit

    def list_units(
        self,
        *,
        pedido_id: Optional[int] = None,
        estado: Optional[str] = None,
        q: Optional[str] = None,
    ) -> List[Unit]:
        if estado is not None and estado not in {s.value for s in UnitState}:
            raise ValidationError(f"Estado de unidad desconocido: {estado}")
        return self.units.filter(pedido_id=pedido_id, estado=estado, q=q)

    def _new_unit(
        self,
        *,
        pedido_id: int,
        modelo_id: int,
        imei: str,
        costo: Decimal,
        imei2: Optional[str],
        fecha_ingreso: Optional[date],
    ) -> Unit:
        unit = Unit(
            imei=imei,
            imei2=(imei2 or "").strip() or None,
            costo=costo,
            fecha_ingreso=fecha_ingreso or date.today(),
            pedido_id=pedido_id,
            modelo_id=modelo_id,
            estado=UnitState.EN_STOCK.value,
        )
        return self.units.add(unit)

    def add_unit(
        self,
        *,
        pedido_id: int,
        modelo_id: int,
        imei: str,
        costo: NumberLike,
        imei2: Optional[str] = None,
        fecha_ingreso: Optional[date] = None,
    ) -> UnitChange:
        """Registra una unidad en_stock y recalcula su pedido antes de retornar."""
        imei = self._clean_imei(imei)
        costo = self._clean_cost(costo)

        with atomic(self.session):
            if self.orders.get_active(pedido_id) is None:
                raise NotFoundError(f"Pedido id={pedido_id} no existe o está inactivo")
            self._validate_model(modelo_id)
            self._check_imei_free(imei)

            unit = self._new_unit(
                pedido_id=pedido_id,
                modelo_id=modelo_id,
                imei=imei,
                costo=costo,
                imei2=imei2,
                fecha_ingreso=fecha_ingreso,
            )
            self.session.flush()  # obtener unit.id
            result = self.aggregator.recompute(pedido_id, commit=False)

        logger.info("Unidad %s (IMEI %s) ingresada al pedido %s", unit.id, imei, pedido_id)
        return UnitChange(unit=unit, recompute=result)

    def add_units(
        self,
        *,
        pedido_id: int,
        modelo_id: int,
        items: Iterable[UnitInput],
        fecha_ingreso: Optional[date] = None,
    ) -> UnitBatch:
        """
        Ingreso por lote de un mismo modelo a un pedido.
        Todo o nada: un IMEI repetido (en el lote o ya vivo) revierte el lote completo.
        El pedido se recalcula una sola vez al final.
        """
        cleaned = []
        seen: Set[str] = set()
        for item in items:
            imei = self._clean_imei(item.imei)
            if imei in seen:
                raise DuplicateError(f"IMEI {imei} repetido en el lote")
            seen.add(imei)
            cleaned.append((imei, self._clean_cost(item.costo), item.imei2))
        if not cleaned:
            raise ValidationError("El lote debe contener al menos una unidad")

        with atomic(self.session):
            if self.orders.get_active(pedido_id) is None:
                raise NotFoundError(f"Pedido id={pedido_id} no existe o está inactivo")
            self._validate_model(modelo_id)
            units = []
            for imei, costo, imei2 in cleaned:
                self._check_imei_free(imei)
                units.append(
                    self._new_unit(
                        pedido_id=pedido_id,
                        modelo_id=modelo_id,
                        imei=imei,
                        costo=costo,
                        imei2=imei2,
                        fecha_ingreso=fecha_ingreso,
                    )
                )
            self.session.flush()
            result = self.aggregator.recompute(pedido_id, commit=False)

        logger.info("Lote de %s unidades ingresado al pedido %s", len(units), pedido_id)
        return UnitBatch(units=units, recompute=result)

    def inventory_summary(self, *, modelo_id: Optional[int] = None) -> List[StockSummary]:
        """Existencias en_stock agrupadas por modelo."""
        return [
            StockSummary(
                modelo_id=row[0],
                marca=row[1],
                nombre=row[2],
                cantidad=row[3],
                costo_total=q2(row[4]),
            )
            for row in self.units.stock_by_model(modelo_id)
        ]

    def update_unit(
        self,
        unit_id: int,
        fields: Optional[Dict[str, Any]] = None,
        new_state: Optional[str] = None,
    ) -> UnitChange:
        """
        Edita campos de la unidad y/o la marca eliminada.
        Siempre recalcula el pedido dueño (el costo o el estado pudieron cambiar).
        """
        fields = dict(fields or {})
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Campos no editables: {', '.join(sorted(unknown))}")

        target: Optional[UnitState] = None
        if new_state is not None:
            try:
                target = UnitState(new_state)
            except ValueError as exc:
                raise ValidationError(f"Estado de unidad desconocido: {new_state}") from exc

        with atomic(self.session):
            unit = self.units.get(unit_id, for_update=True)
            if unit is None:
                raise NotFoundError(f"Unidad id={unit_id} no existe")
            if unit.state is UnitState.ELIMINADO:
                raise InvalidStateError(f"Unidad id={unit_id} está eliminada; no admite cambios")
            if target is not None and target is not unit.state and target is not UnitState.ELIMINADO:
                raise InvalidStateError(
                    f"Unidad id={unit_id}: {unit.estado} -> {target.value} solo vía ventas/anulaciones"
                )

            if "imei" in fields:
                imei = self._clean_imei(fields["imei"])
                if imei != unit.imei:
                    self._check_imei_free(imei, exclude_id=unit.id)
                unit.imei = imei
            if "imei2" in fields:
                unit.imei2 = (fields["imei2"] or "").strip() or None
            if "costo" in fields:
                unit.costo = self._clean_cost(fields["costo"])
            if "fecha_ingreso" in fields:
                if fields["fecha_ingreso"] is None:
                    raise ValidationError("Falta 'fecha_ingreso'")
                unit.fecha_ingreso = fields["fecha_ingreso"]
            if "modelo_id" in fields:
                if fields["modelo_id"] is None:
                    raise ValidationError("Falta 'modelo_id'")
                self._validate_model(fields["modelo_id"])
                unit.modelo_id = fields["modelo_id"]

            if target is UnitState.ELIMINADO:
                unit.estado = UnitState.ELIMINADO.value

            result = self.aggregator.recompute(unit.pedido_id, commit=False)

        logger.info(
            "Unidad %s editada (campos=%s, estado=%s)",
            unit_id, sorted(fields) or "-", unit.estado,
        )
        return UnitChange(unit=unit, recompute=result)
