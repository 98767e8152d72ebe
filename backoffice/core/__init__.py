from .errors import (
    BackofficeError,
    ConflictError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .order_aggregator import OrderAggregator, RecomputeResult
from .unit_ledger import StockSummary, UnitBatch, UnitChange, UnitInput, UnitLedger
from .purchase_manager import PurchaseManager
from .sales_manager import SalesManager, SaleLineInput, SaleResult
from .voidance_manager import VoidanceManager
from .financial_reports import FinancialReporter, Granularity

__all__ = [
    "BackofficeError",
    "ConflictError",
    "DuplicateError",
    "InvalidStateError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    "OrderAggregator",
    "RecomputeResult",
    "UnitLedger",
    "UnitChange",
    "UnitInput",
    "UnitBatch",
    "StockSummary",
    "PurchaseManager",
    "SalesManager",
    "SaleLineInput",
    "SaleResult",
    "VoidanceManager",
    "FinancialReporter",
    "Granularity",
]
