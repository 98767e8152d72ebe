"""
Configuración de la aplicación:
- Lee config/settings.ini (secciones [database] y [logging]).
- Variables de entorno DATABASE_URL y BACKOFFICE_LOG_LEVEL tienen prioridad.
- Sin settings.ini se usa una BD SQLite local.
"""

from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path

CONFIG_PATH = Path("config/settings.ini")

DEFAULT_DB_URL = "sqlite:///app_data/backoffice.db"
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def read_config() -> configparser.ConfigParser:
    cfg = configparser.ConfigParser()
    if CONFIG_PATH.exists():
        cfg.read(CONFIG_PATH, encoding="utf-8")
    if not cfg.has_section("database"):
        cfg["database"] = {"url": DEFAULT_DB_URL}
    if not cfg.has_section("logging"):
        cfg["logging"] = {"level": DEFAULT_LOG_LEVEL}
    return cfg


def database_url() -> str:
    """URL de la BD: DATABASE_URL (servidor) o settings.ini / SQLite local."""
    env_url = os.getenv("DATABASE_URL", "").strip()
    if env_url:
        return env_url
    return read_config().get("database", "url", fallback=DEFAULT_DB_URL)


def log_level() -> str:
    env_level = os.getenv("BACKOFFICE_LOG_LEVEL", "").strip()
    if env_level:
        return env_level.upper()
    return read_config().get("logging", "level", fallback=DEFAULT_LOG_LEVEL).upper()


def configure_logging() -> None:
    """Aplica el nivel configurado al logger raíz del paquete."""
    level = getattr(logging, log_level(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("backoffice").setLevel(level)


def company_name() -> str:
    """Razón social para encabezados de reportes ([company] name)."""
    return read_config().get("company", "name", fallback="").strip()
