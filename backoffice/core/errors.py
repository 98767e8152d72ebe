"""
Errores tipados del núcleo financiero.

Cada error lleva `kind` (estable, apto para API) y `status_code` (HTTP).
La capa HTTP traduce cualquier BackofficeError con un único handler.

    BackofficeError
    +-- ValidationError      400  dato faltante o mal formado
    +-- NotFoundError        404  entidad ausente o inactiva
    +-- DuplicateError       409  violación de unicidad (IMEI, número de pedido)
    +-- InvalidStateError    409  operación no válida para el estado actual
    +-- ConflictError        409  modificación concurrente (unidad revendida)
    +-- StorageError         500  falla del motor; aborta la transacción
"""

from __future__ import annotations


class BackofficeError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class ValidationError(BackofficeError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(BackofficeError):
    kind = "not_found"
    status_code = 404


class DuplicateError(BackofficeError):
    kind = "duplicate"
    status_code = 409


class InvalidStateError(BackofficeError):
    kind = "invalid_state"
    status_code = 409


class ConflictError(BackofficeError):
    kind = "conflict"
    status_code = 409


class StorageError(BackofficeError):
    kind = "storage_error"
    status_code = 500
