import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import admin
from .config import get_settings
from .database import Base, engine, get_db
from .errors import CheckoutError, DownstreamStoreError, InvalidInput
from .gateway import RazorpayGateway
from .identity import HttpIdentityProvider, bearer_token
from .ledger import SqlLedgerStore
from .lifecycle import OrderLifecycleManager
from .messaging.producer import build_publisher
from .ports import Identity
from .schemas import (
    ConfirmedOrderOut,
    CreateOrderRequest,
    CreateOrderResponse,
    InventoryFailureOut,
    LowStockVariantOut,
    OrderAnalyticsOut,
    OrderHandleOut,
    OrderOut,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables on startup if they don't exist.
    Base.metadata.create_all(bind=engine)
    yield
    get_publisher().close()
    get_identity_provider().close()
    get_payment_gateway().close()


app = FastAPI(title="Checkout Service", lifespan=lifespan)


# --- Error rendering ---

def _error_response(error: CheckoutError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"success": False, "error": error.to_dict()})


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request body"
    return _error_response(InvalidInput(message))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(DownstreamStoreError())


# --- Collaborators ---

@lru_cache()
def get_identity_provider():
    return HttpIdentityProvider.from_settings(settings)


@lru_cache()
def get_payment_gateway():
    return RazorpayGateway.from_settings(settings)


@lru_cache()
def get_publisher():
    return build_publisher(settings)


def get_ledger(db: Session = Depends(get_db)):
    return SqlLedgerStore(db, allow_backorder=settings.allow_backorder)


def get_lifecycle(
    ledger: SqlLedgerStore = Depends(get_ledger),
    identity_provider=Depends(get_identity_provider),
    gateway=Depends(get_payment_gateway),
    publisher=Depends(get_publisher),
):
    return OrderLifecycleManager(
        identity_provider=identity_provider,
        gateway=gateway,
        ledger=ledger,
        publisher=publisher,
        currency=settings.currency,
    )


def get_credential(authorization: Optional[str] = Header(None)) -> str:
    return bearer_token(authorization)


def get_identity(
    credential: str = Depends(get_credential),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
) -> Identity:
    # Resolved as a dependency, ahead of request body validation.
    return lifecycle.authenticate(credential)


def get_admin(
    identity: Identity = Depends(get_identity),
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    """Insist on the admin role from the caller's profile."""
    admin.require_admin(ledger.get_role(identity.identity_id))
    return identity


# --- Endpoints ---

@app.get("/")
def root():
    """Health check endpoint."""
    return {"message": "Checkout service is running"}


@app.post("/api/v1/payments/create-order", response_model=CreateOrderResponse)
def create_order(
    req: CreateOrderRequest,
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    """Persist a pending order and hand back the gateway order the browser checkout needs."""
    handle = lifecycle.create_order(req, identity)
    return CreateOrderResponse(
        order=OrderHandleOut(
            id=handle.order_id,
            order_number=handle.order_number,
            razorpay_order_id=handle.gateway_order_id,
            amount=handle.amount_minor_units,
            currency=handle.currency,
            key_id=handle.key_id,
        )
    )


@app.post("/api/v1/payments/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    req: VerifyPaymentRequest,
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    """Check the gateway signature, mark the order paid and take the stock."""
    result = lifecycle.confirm_payment(req, identity)
    return VerifyPaymentResponse(
        order=ConfirmedOrderOut(
            id=result.order_id,
            order_number=result.order_number,
            order_status=result.order_status,
            payment_status=result.payment_status,
        ),
        inventory_failures=[
            InventoryFailureOut(
                variant_id=failure.variant_id,
                quantity_change=failure.quantity_change,
                reason=failure.reason,
            )
            for failure in result.inventory_failures
        ],
    )


# Retrieves the caller's own orders, newest first.
@app.get("/api/v1/orders", response_model=List[OrderOut])
def list_my_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    return lifecycle.list_orders(identity, limit=limit, offset=offset)


# Retrieves a single order; other users' orders look like missing ones.
@app.get("/api/v1/orders/{order_id}", response_model=OrderOut)
def get_my_order(
    order_id: str,
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    return lifecycle.get_order(order_id, identity)


@app.get("/api/v1/admin/orders", response_model=List[OrderOut])
def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _admin=Depends(get_admin),
    db: Session = Depends(get_db),
):
    return admin.list_orders(
        db, page=page, limit=limit, status=status, search=search, date_from=date_from, date_to=date_to
    )


@app.get("/api/v1/admin/orders/analytics", response_model=OrderAnalyticsOut)
def admin_order_analytics(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _admin=Depends(get_admin),
    db: Session = Depends(get_db),
):
    return admin.order_analytics(db, date_from=date_from, date_to=date_to)


@app.get("/api/v1/admin/inventory/low-stock", response_model=List[LowStockVariantOut])
def admin_low_stock(
    threshold: int = Query(10, ge=0),
    _admin=Depends(get_admin),
    db: Session = Depends(get_db),
):
    return admin.low_stock_variants(db, threshold=threshold)
