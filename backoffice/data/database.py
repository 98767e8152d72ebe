"""
Gestión de la base de datos (SQLAlchemy):
- Crea el engine (pool compartido) a partir de backoffice.config.
- Activa PRAGMA foreign_keys en SQLite.
- Entrega una Session nueva por request/operación (sin sesión global).
- init_db(): crea tablas con el ORM.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backoffice import config

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _safe_sqlite_url(db_url: str) -> str:
    """
    Si es SQLite, garantiza que el directorio del archivo exista.
    Rutas relativas se resuelven contra el cwd.
    """
    prefix = "sqlite:///"
    if not db_url.startswith(prefix):
        return db_url
    raw_path = db_url[len(prefix):]
    if raw_path in ("", ":memory:"):
        return db_url
    path = Path(raw_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)
    # Formato POSIX para evitar barras invertidas en la URI
    return f"sqlite:///{path.resolve().as_posix()}"


def _is_sqlite(engine: Engine) -> bool:
    return engine.url.get_backend_name() == "sqlite"


def get_engine() -> Engine:
    """
    Crea (o retorna) el Engine del proceso. Es un pool de conexiones,
    las sesiones se abren por operación con new_session().
    """
    global _engine
    if _engine is not None:
        return _engine

    db_url = _safe_sqlite_url(config.database_url())

    kw = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgresql"):
        kw.update({"pool_size": 5, "max_overflow": 5})
    elif db_url.startswith("sqlite"):
        # Las requests de FastAPI usan hilos del threadpool
        kw["connect_args"] = {"check_same_thread": False}
    _engine = create_engine(db_url, **kw)

    if _is_sqlite(_engine):
        @event.listens_for(_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    logger.info("Engine creado para %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(), autoflush=False, future=True
        )
    return _session_factory


def new_session() -> Session:
    """Session nueva; el llamador es dueño de su ciclo de vida."""
    return get_session_factory()()


def init_db(create_with_orm: bool = True) -> None:
    """Crea las tablas definidas en los modelos (no falla si ya existen)."""
    engine = get_engine()

    # Carga diferida para evitar import circular
    from .models import Base  # noqa: WPS433

    if create_with_orm:
        Base.metadata.create_all(bind=engine)


def dispose_engine() -> None:
    """Cierra el engine y olvida la fábrica de sesiones (útil para tests)."""
    global _engine, _session_factory
    _session_factory = None
    if _engine is not None:
        _engine.dispose()
        _engine = None
