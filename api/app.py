"""
HTTP surface for the rental core.

Every response is wrapped in the ``{success, data, message}`` envelope. The
caller's identity arrives in the ``X-User-Id`` header, set by the auth layer in
front of this service.

Run with: uvicorn api.app:app --reload
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

from fastapi import Depends, FastAPI, Header, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.config import MarketplaceConfig
from connectors.listing_catalog import ListingCatalog
from connectors.order_book import OrderBook
from connectors.redis_publisher import RedisEventPublisher
from connectors.reservation_ledger import ReservationLedger
from models.api import (
    ApiResponse,
    CancelOrderRequest,
    CreateListingRequest,
    CreateOrderRequest,
    ResolveDisputeRequest,
    UpdateListingRequest,
    UpdateStatusRequest,
)
from models.enums import OrderStatus, PaymentOption, UserRole
from models.listing import Listing
from models.order import Order
from services.availability import InventoryAvailabilityChecker
from services.orchestrator import OrderOrchestrator
from services.pricing import PricingCalculator
from utils.errors import InvalidArgument, PermissionDenied, RentalError
from utils.event_bus import EventBus
from utils.logger import get_logger

logger = get_logger("rental-api")


def envelope(data=None, message: str = "", success: bool = True) -> dict:
    return ApiResponse(success=success, data=data, message=message).to_wire()


async def current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity from the auth layer."""
    if not x_user_id:
        raise StarletteHTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header required")
    return x_user_id


def _check_party(order: Order, user_id: str) -> None:
    if user_id not in (order.renter_id, order.host_id):
        raise PermissionDenied("Not authorized to access this order")


def _check_owner(listing: Listing, user_id: str) -> None:
    if listing.owner_id != user_id:
        raise PermissionDenied("Not authorized to change this listing")


def create_app(
    config: MarketplaceConfig | None = None,
    catalog: ListingCatalog | None = None,
    ledger: ReservationLedger | None = None,
    orders: OrderBook | None = None,
    event_bus: EventBus | None = None,
) -> FastAPI:
    """Wire stores and services into a FastAPI app. Tests pass their own stores."""
    config = config or MarketplaceConfig.from_env()
    catalog = catalog if catalog is not None else ListingCatalog()
    ledger = ledger if ledger is not None else ReservationLedger(lock_timeout=config.lock_timeout_seconds)
    orders = orders if orders is not None else OrderBook()
    event_bus = event_bus if event_bus is not None else EventBus()
    logger.setLevel(config.log_level)

    pricing = PricingCalculator(config.platform_commission_percent)
    availability = InventoryAvailabilityChecker(catalog, ledger, config, event_bus=event_bus)
    orchestrator = OrderOrchestrator(catalog, ledger, orders, availability, pricing, config, event_bus)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        publisher = None
        if config.redis_url:
            publisher = RedisEventPublisher.from_url(config.redis_url)
            if await publisher.ping():
                publisher.attach(event_bus)
                logger.info("Connected to Redis, forwarding rental events to streams.")
            else:
                await publisher.close()
                publisher = None
        app.state.redis_publisher = publisher
        yield
        if publisher is not None:
            publisher.detach(event_bus)
            await publisher.close()

    app = FastAPI(
        title="Rental Booking Service",
        description="Availability, pricing and order orchestration for rentable inventory",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.catalog = catalog
    app.state.ledger = ledger
    app.state.orders = orders
    app.state.event_bus = event_bus
    app.state.availability = availability
    app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        return response

    @app.exception_handler(RentalError)
    async def rental_error_handler(request: Request, exc: RentalError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(exc.to_dict(), exc.message, success=False),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(None, str(exc.detail), success=False),
            headers=getattr(exc, "headers", None),
        )

    # --- Listings --- #

    @app.get("/listings")
    async def search_listings(
        category: str | None = None,
        location: str | None = None,
        min_price: Decimal | None = Query(default=None, alias="minPrice"),
        max_price: Decimal | None = Query(default=None, alias="maxPrice"),
        start: datetime | None = None,
        end: datetime | None = None,
        qty: int = Query(default=1, ge=1),
        available_only: bool = Query(default=False, alias="availableOnly"),
    ):
        hits = await availability.search(category, location, min_price, max_price, start, end, qty, available_only)
        return envelope([hit.to_wire() for hit in hits], f"{len(hits)} listing(s) found")

    @app.post("/listings", status_code=status.HTTP_201_CREATED)
    async def create_listing(body: CreateListingRequest, user_id: str = Depends(current_user)):
        try:
            listing = Listing(owner_id=user_id, **body.model_dump())
        except ValidationError as e:
            raise InvalidArgument(f"Invalid listing: {e.errors()[0]['msg']}") from e
        catalog.add(listing)
        return envelope(listing.to_wire(), "Listing created")

    @app.get("/listings/{listing_id}")
    async def get_listing(listing_id: str):
        listing = await catalog.get(listing_id)
        return envelope(listing.to_wire())

    @app.patch("/listings/{listing_id}")
    async def update_listing(listing_id: str, body: UpdateListingRequest, user_id: str = Depends(current_user)):
        _check_owner(await catalog.get(listing_id), user_id)
        listing = await catalog.update(listing_id, **body.model_dump(exclude_unset=True))
        return envelope(listing.to_wire(), "Listing updated")

    @app.delete("/listings/{listing_id}")
    async def disable_listing(listing_id: str, user_id: str = Depends(current_user)):
        _check_owner(await catalog.get(listing_id), user_id)
        listing = await catalog.disable(listing_id)
        logger.info(f"Listing {listing_id} disabled by {user_id}")
        return envelope(listing.to_wire(), "Listing disabled")

    @app.get("/listings/{listing_id}/availability")
    async def listing_availability(
        listing_id: str,
        start: datetime,
        end: datetime,
        qty: int = 1,
        payment_option: PaymentOption = Query(default=PaymentOption.DEPOSIT, alias="paymentOption"),
    ):
        result = await availability.check_availability(listing_id, start, end, qty)
        listing = await catalog.get(listing_id)
        quote = pricing.compute_price(listing, qty, result.start, result.end, payment_option)
        data = result.to_wire()
        data["pricing"] = quote.rounded().to_wire()
        message = "Available" if result.available else (result.reason or "Not available")
        return envelope(data, message)

    # --- Orders --- #

    @app.post("/orders", status_code=status.HTTP_201_CREATED)
    async def create_order(body: CreateOrderRequest, user_id: str = Depends(current_user)):
        order = await orchestrator.create_order(user_id, body.lines, body.payment_option)
        return envelope({"order": order.to_wire()}, f"Order {order.order_number} created")

    @app.get("/orders")
    async def list_orders(
        role: UserRole = UserRole.RENTER,
        order_status: OrderStatus | None = Query(default=None, alias="status"),
        limit: int = Query(default=50, ge=1, le=200),
        user_id: str = Depends(current_user),
    ):
        found = await orchestrator.list_orders(user_id, role, order_status, limit)
        return envelope([order.to_wire() for order in found], f"{len(found)} order(s)")

    @app.get("/orders/{order_id}")
    async def get_order(order_id: str, user_id: str = Depends(current_user)):
        order = await orchestrator.get_order(order_id)
        _check_party(order, user_id)
        return envelope({"order": order.to_wire()})

    @app.patch("/orders/{order_id}/status")
    async def update_order_status(order_id: str, body: UpdateStatusRequest, user_id: str = Depends(current_user)):
        _check_party(await orchestrator.get_order(order_id), user_id)
        order = await orchestrator.update_status(order_id, body.status, user_id, body.notes)
        return envelope({"order": order.to_wire()}, f"Order status updated to {order.order_status.value}")

    @app.post("/orders/{order_id}/cancel")
    async def cancel_order(
        order_id: str, body: CancelOrderRequest | None = None, user_id: str = Depends(current_user)
    ):
        _check_party(await orchestrator.get_order(order_id), user_id)
        reason = body.reason if body else None
        order = await orchestrator.cancel_order(order_id, user_id, reason)
        return envelope({"order": order.to_wire()}, "Order cancelled")

    @app.post("/orders/{order_id}/payment/confirm")
    async def confirm_payment(order_id: str, user_id: str = Depends(current_user)):
        _check_party(await orchestrator.get_order(order_id), user_id)
        order = await orchestrator.confirm_payment(order_id, user_id)
        return envelope({"order": order.to_wire()}, "Payment confirmed")

    # Dispute resolution is an operator action; the auth layer restricts who can reach it.
    @app.post("/orders/{order_id}/dispute/resolve")
    async def resolve_dispute(order_id: str, body: ResolveDisputeRequest, user_id: str = Depends(current_user)):
        order = await orchestrator.resolve_dispute(
            order_id, body.resolution, body.refund_amount, body.notes, actor_id=user_id
        )
        return envelope({"order": order.to_wire()}, f"Dispute resolved: {body.resolution.value}")

    return app


app = create_app()
