"""
Fixtures de prueba:
- Crea una BD SQLite temporal en un directorio tmp.
- Reescribe config/settings.ini para apuntar a esa BD.
- Inicializa/limpia el engine entre tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import pytest

from backoffice import config
from backoffice.core import PurchaseManager, UnitLedger
from backoffice.data import database as db
from backoffice.data.models import Customer, PhoneModel, Supplier, SupplierOrder


@pytest.fixture(scope="session")
def tmp_project_dir(tmp_path_factory):
    # Carpeta temporal estilo proyecto
    p = tmp_path_factory.mktemp("backoffice_tests")
    (p / "config").mkdir(exist_ok=True)
    return p


@pytest.fixture(autouse=True)
def isolated_db(tmp_project_dir, monkeypatch):
    """
    BD aislada por test:
    - Escribe un settings.ini apuntando a backoffice_test.db en tmp.
    - Monkeypatch a config.CONFIG_PATH (y sin DATABASE_URL del entorno).
    - Reinicia engine antes y después.
    """
    cfg_path = tmp_project_dir / "config" / "settings.ini"
    dbfile = tmp_project_dir / "backoffice_test.db"
    cfg_path.write_text(
        f"[database]\nurl = sqlite:///{dbfile.as_posix()}\n\n[logging]\nlevel = DEBUG\n",
        encoding="utf-8",
    )

    monkeypatch.setattr(config, "CONFIG_PATH", cfg_path, raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    # Asegurar estado limpio
    db.dispose_engine()
    if dbfile.exists():
        dbfile.unlink()
    db.init_db(create_with_orm=True)

    yield

    # Limpieza
    db.dispose_engine()
    if dbfile.exists():
        dbfile.unlink()


@pytest.fixture()
def session():
    """Sesión SQLAlchemy nueva para el test."""
    sess = db.new_session()
    try:
        yield sess
    finally:
        sess.close()


@dataclass
class Catalog:
    supplier: Supplier
    customer: Customer
    model: PhoneModel
    order: SupplierOrder


@pytest.fixture()
def catalog(session) -> Catalog:
    """Proveedor, cliente, modelo y un pedido (con egreso y cuenta por pagar) listos para usar."""
    supplier = Supplier(
        razon_social="Importaciones Movil SAC",
        ruc="20123456789",
        contacto="Ventas",
        email="ventas@movil.pe",
    )
    customer = Customer(nombre="Cliente Test", documento="45678912", telefono="987654321")
    model = PhoneModel(marca="Samsung", nombre="Galaxy A54", almacenamiento="128GB", color="Negro")
    session.add_all([supplier, customer, model])
    session.commit()

    order = PurchaseManager(session).create_order(
        proveedor_id=supplier.id,
        numero_pedido="PED-0001",
        fecha_pedido=date(2024, 1, 10),
        fecha_vencimiento=date(2024, 2, 10),
    )
    return Catalog(supplier=supplier, customer=customer, model=model, order=order)


@pytest.fixture()
def add_units(session, catalog):
    """Ingresa una unidad por costo con IMEIs correlativos; devuelve las unidades."""
    def _add(*costos, order_id=None, prefix="3569"):
        ledger = UnitLedger(session)
        units = []
        for i, costo in enumerate(costos):
            change = ledger.add_unit(
                pedido_id=order_id or catalog.order.id,
                modelo_id=catalog.model.id,
                imei=f"{prefix}{i:011d}",
                costo=costo,
                fecha_ingreso=date(2024, 1, 15),
            )
            units.append(change.unit)
        return units
    return _add
