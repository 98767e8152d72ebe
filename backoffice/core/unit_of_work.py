from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import BackofficeError, DuplicateError, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session: Session, *, commit: bool = True) -> Iterator[Session]:
    """
    Una transacción: commit al salir sin error, rollback ante cualquier error.
    - IntegrityError  -> DuplicateError
    - SQLAlchemyError -> StorageError
    Con commit=False solo hace flush (el llamador ya está dentro de una transacción
    y es quien decide commit/rollback).
    """
    try:
        yield session
        if commit:
            session.commit()
        else:
            session.flush()
    except BackofficeError:
        if commit:
            session.rollback()
        raise
    except IntegrityError as exc:
        if commit:
            session.rollback()
        logger.warning("Restricción de unicidad/integridad violada: %s", exc.orig)
        raise DuplicateError(f"Violación de integridad: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        if commit:
            session.rollback()
        logger.exception("Falla de almacenamiento; transacción revertida")
        raise StorageError(f"Falla de almacenamiento: {exc}") from exc
    except Exception:
        if commit:
            session.rollback()
        raise
