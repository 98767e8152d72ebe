from __future__ import annotations

import logging
from datetime import date
from io import StringIO
from typing import Iterator

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from backoffice import config
from backoffice.core import (
    BackofficeError,
    FinancialReporter,
    NotFoundError,
    OrderAggregator,
    PurchaseManager,
    SaleLineInput,
    SalesManager,
    UnitInput,
    UnitLedger,
    ValidationError,
    VoidanceManager,
)
from backoffice.core.unit_of_work import atomic
from backoffice.data.database import init_db, new_session
from backoffice.data.models import Customer, PhoneModel, Supplier
from backoffice.data.repository import (
    CustomerRepository,
    PhoneModelRepository,
    SupplierRepository,
)
from backoffice.reports.pnl_report import pnl_csv, pnl_pdf
from .schemas import (
    ComparisonOut,
    CustomerIn,
    CustomerOut,
    ExpenseCreate,
    ExpenseOut,
    Message,
    MonthlySalesOut,
    OrderCreate,
    OrderOut,
    PeriodTotalsOut,
    PhoneModelIn,
    PhoneModelOut,
    RecomputeOut,
    SaleCreate,
    SaleCreated,
    SaleOut,
    SaleWithDetails,
    SalesSummaryOut,
    StockSummaryOut,
    SupplierIn,
    SupplierOut,
    UnitBatchCreate,
    UnitBatchOut,
    UnitChangeOut,
    UnitCreate,
    UnitOut,
    UnitUpdate,
)

logger = logging.getLogger(__name__)


def get_db() -> Iterator[Session]:
    """Dependency que proporciona una sesión de DB por request."""
    sess = new_session()
    try:
        yield sess
    finally:
        sess.close()


app = FastAPI(title="Backoffice Celulares API", version="0.1.0")

# CORS (ajusta orígenes según tu front)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _startup() -> None:
    config.configure_logging()
    # Asegura que la DB esté inicializada
    init_db()


@app.exception_handler(BackofficeError)
def _backoffice_error(request: Request, exc: BackofficeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    else:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "validation_error", "detail": detail})


@app.get("/health", response_model=Message)
def health() -> Message:
    return Message(message="ok")


# -----------------------------
# Suppliers
# -----------------------------


@app.get("/suppliers", response_model=list[SupplierOut])
def list_suppliers(q: str | None = None, db: Session = Depends(get_db)):
    repo = SupplierRepository(db)
    if q:
        return repo.search(q)
    return repo.list()


@app.post("/suppliers", response_model=SupplierOut, status_code=201)
def create_supplier(payload: SupplierIn, db: Session = Depends(get_db)):
    if not payload.razon_social.strip():
        raise ValidationError("Falta 'razon_social'")
    with atomic(db):
        obj = SupplierRepository(db).add(Supplier(**payload.model_dump(), activo=True))
    db.refresh(obj)
    return obj


@app.get("/suppliers/{supplier_id}", response_model=SupplierOut)
def get_supplier(supplier_id: int, db: Session = Depends(get_db)):
    obj = SupplierRepository(db).get(supplier_id)
    if not obj:
        raise NotFoundError("Proveedor no encontrado")
    return obj


# -----------------------------
# Customers
# -----------------------------


@app.get("/customers", response_model=list[CustomerOut])
def list_customers(q: str | None = None, db: Session = Depends(get_db)):
    repo = CustomerRepository(db)
    if q:
        return repo.search(q)
    return repo.list()


@app.post("/customers", response_model=CustomerOut, status_code=201)
def create_customer(payload: CustomerIn, db: Session = Depends(get_db)):
    if not payload.nombre.strip():
        raise ValidationError("Falta 'nombre'")
    with atomic(db):
        obj = CustomerRepository(db).add(Customer(**payload.model_dump()))
    db.refresh(obj)
    return obj


@app.get("/customers/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    obj = CustomerRepository(db).get(customer_id)
    if not obj:
        raise NotFoundError("Cliente no encontrado")
    return obj


# -----------------------------
# Phone models
# -----------------------------


@app.get("/models", response_model=list[PhoneModelOut])
def list_models(q: str | None = None, db: Session = Depends(get_db)):
    repo = PhoneModelRepository(db)
    if q:
        return repo.search(q)
    return repo.list()


@app.post("/models", response_model=PhoneModelOut, status_code=201)
def create_model(payload: PhoneModelIn, db: Session = Depends(get_db)):
    if not payload.marca.strip() or not payload.nombre.strip():
        raise ValidationError("Faltan 'marca' y 'nombre'")
    with atomic(db):
        obj = PhoneModelRepository(db).add(PhoneModel(**payload.model_dump(), activo=True))
    db.refresh(obj)
    return obj


@app.get("/models/{model_id}", response_model=PhoneModelOut)
def get_model(model_id: int, db: Session = Depends(get_db)):
    obj = PhoneModelRepository(db).get(model_id)
    if not obj:
        raise NotFoundError("Modelo no encontrado")
    return obj


# -----------------------------
# Supplier orders
# -----------------------------


@app.post("/orders", response_model=OrderOut, status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    return PurchaseManager(db).create_order(**payload.model_dump())


@app.get("/orders", response_model=list[OrderOut])
def list_orders(proveedor_id: int | None = None, db: Session = Depends(get_db)):
    return PurchaseManager(db).list_orders(proveedor_id=proveedor_id)


@app.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int, db: Session = Depends(get_db)):
    return PurchaseManager(db).get_order(order_id)


@app.post("/orders/{order_id}/recompute", response_model=RecomputeOut)
def recompute_order(order_id: int, db: Session = Depends(get_db)):
    return OrderAggregator(db).recompute(order_id)


# -----------------------------
# Units
# -----------------------------


@app.post("/units", response_model=UnitChangeOut, status_code=201)
def create_unit(payload: UnitCreate, db: Session = Depends(get_db)):
    change = UnitLedger(db).add_unit(**payload.model_dump())
    return {"unit": change.unit, "recompute": change.recompute}


@app.post("/units/batch", response_model=UnitBatchOut, status_code=201)
def create_units_batch(payload: UnitBatchCreate, db: Session = Depends(get_db)):
    batch = UnitLedger(db).add_units(
        pedido_id=payload.pedido_id,
        modelo_id=payload.modelo_id,
        fecha_ingreso=payload.fecha_ingreso,
        items=[UnitInput(imei=it.imei, costo=it.costo, imei2=it.imei2) for it in payload.items],
    )
    return {"units": batch.units, "recompute": batch.recompute}


@app.get("/inventory", response_model=list[StockSummaryOut])
def inventory(modelo_id: int | None = None, db: Session = Depends(get_db)):
    return UnitLedger(db).inventory_summary(modelo_id=modelo_id)


@app.get("/units", response_model=list[UnitOut])
def list_units(
    pedido_id: int | None = None,
    estado: str | None = None,
    q: str | None = None,
    db: Session = Depends(get_db),
):
    return UnitLedger(db).list_units(pedido_id=pedido_id, estado=estado, q=q)


@app.get("/units/{unit_id}", response_model=UnitOut)
def get_unit(unit_id: int, db: Session = Depends(get_db)):
    return UnitLedger(db).get_unit(unit_id)


@app.put("/units/{unit_id}", response_model=UnitChangeOut)
def update_unit(unit_id: int, payload: UnitUpdate, db: Session = Depends(get_db)):
    fields = payload.model_dump(exclude_unset=True)
    new_state = fields.pop("estado", None)
    change = UnitLedger(db).update_unit(unit_id, fields, new_state=new_state)
    return {"unit": change.unit, "recompute": change.recompute}


# -----------------------------
# Sales
# -----------------------------


@app.post("/sales", response_model=SaleCreated, status_code=201)
def create_sale(payload: SaleCreate, db: Session = Depends(get_db)):
    return SalesManager(db).create_sale(
        cliente_id=payload.cliente_id,
        lines=[SaleLineInput(unidad_id=ln.unidad_id, precio_venta=ln.precio_venta) for ln in payload.lines],
        fecha_pedido=payload.fecha_pedido,
        fecha_vencimiento=payload.fecha_vencimiento,
    )


@app.get("/sales", response_model=list[SaleOut])
def list_sales(
    desde: date | None = None,
    hasta: date | None = None,
    cliente_id: int | None = None,
    incluir_anuladas: bool = False,
    db: Session = Depends(get_db),
):
    return SalesManager(db).list_sales(
        desde=desde, hasta=hasta, cliente_id=cliente_id, incluir_anuladas=incluir_anuladas
    )


@app.get("/sales/{sale_id}", response_model=SaleWithDetails)
def get_sale(sale_id: int, db: Session = Depends(get_db)):
    return SalesManager(db).get_sale(sale_id)


@app.post("/sales/{sale_id}/void", response_model=SaleOut)
def void_sale(sale_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).void_sale(sale_id)


@app.post("/sales/{sale_id}/recover", response_model=SaleOut)
def recover_sale(sale_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).recover_sale(sale_id)


@app.post("/sales/{sale_id}/pay", response_model=SaleOut)
def pay_sale(sale_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).mark_sale_paid(sale_id)


@app.post("/sales/{sale_id}/unpay", response_model=SaleOut)
def unpay_sale(sale_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).mark_sale_unpaid(sale_id)


# -----------------------------
# Expenses
# -----------------------------


@app.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(payload: ExpenseCreate, db: Session = Depends(get_db)):
    return PurchaseManager(db).create_expense(**payload.model_dump())


@app.get("/expenses", response_model=list[ExpenseOut])
def list_expenses(
    desde: date | None = None,
    hasta: date | None = None,
    incluir_eliminados: bool = False,
    db: Session = Depends(get_db),
):
    return PurchaseManager(db).list_expenses(
        desde=desde, hasta=hasta, incluir_eliminados=incluir_eliminados
    )


@app.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: int, db: Session = Depends(get_db)):
    return PurchaseManager(db).get_expense(expense_id)


@app.post("/expenses/{expense_id}/pay", response_model=ExpenseOut)
def pay_expense(expense_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).mark_expense_paid(expense_id)


@app.post("/expenses/{expense_id}/unpay", response_model=ExpenseOut)
def unpay_expense(expense_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).mark_expense_unpaid(expense_id)


@app.delete("/expenses/{expense_id}", response_model=ExpenseOut)
def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).delete_expense(expense_id)


@app.post("/expenses/{expense_id}/recover", response_model=ExpenseOut)
def recover_expense(expense_id: int, db: Session = Depends(get_db)):
    return VoidanceManager(db).recover_expense(expense_id)


# -----------------------------
# Reports
# -----------------------------


@app.get("/reports/pnl", response_model=list[PeriodTotalsOut])
def pnl_report(desde: date, hasta: date, agrupacion: str = "mes", db: Session = Depends(get_db)):
    return FinancialReporter(db).rollup(desde, hasta, agrupacion)


@app.get("/reports/pnl.csv")
def pnl_report_csv(desde: date, hasta: date, agrupacion: str = "mes", db: Session = Depends(get_db)):
    rows = FinancialReporter(db).rollup(desde, hasta, agrupacion)
    buf = StringIO(pnl_csv(rows))
    return StreamingResponse(buf, media_type="text/csv", headers={
        "Content-Disposition": f"attachment; filename=resultados_{desde}_{hasta}.csv"
    })


@app.get("/reports/pnl.pdf")
def pnl_report_pdf(desde: date, hasta: date, agrupacion: str = "mes", db: Session = Depends(get_db)):
    rows = FinancialReporter(db).rollup(desde, hasta, agrupacion)
    pdf = pnl_pdf(rows, desde=desde, hasta=hasta, agrupacion=agrupacion, empresa=config.company_name())
    return Response(content=pdf, media_type="application/pdf", headers={
        "Content-Disposition": f"attachment; filename=resultados_{desde}_{hasta}.pdf"
    })


@app.get("/reports/compare", response_model=ComparisonOut)
def compare_report(
    desde_a: date,
    hasta_a: date,
    desde_b: date,
    hasta_b: date,
    db: Session = Depends(get_db),
):
    return FinancialReporter(db).compare((desde_a, hasta_a), (desde_b, hasta_b))


@app.get("/reports/sales/summary", response_model=SalesSummaryOut)
def sales_summary(desde: date, hasta: date, db: Session = Depends(get_db)):
    return FinancialReporter(db).sales_summary(desde, hasta)


@app.get("/reports/sales/monthly", response_model=MonthlySalesOut)
def sales_monthly(desde: str, hasta: str, db: Session = Depends(get_db)):
    return {"periodos": FinancialReporter(db).monthly_sales(desde, hasta)}


def run() -> None:
    """Entrada de consola: sirve la API con uvicorn."""
    import uvicorn

    uvicorn.run("api.main:app", host="127.0.0.1", port=8000)
