"""
FastAPI REST API for grocer.

Callers identify themselves with an X-User-Id header holding a user ID, as
returned by /api/login. The header is trusted as sent: there is no session
or token, so anyone who knows a user's ID can act as that user. Run the API
only behind a gateway that authenticates callers and sets the header.

No app is built at import time. `grocer serve` builds one from the settings,
or run `uvicorn --factory grocer.api:create_app`.
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .access import Action, Identity, ensure_can, visible_orders
from .config import Settings, get_settings
from .errors import (
    AuthenticationError,
    GrocerError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    OrderNotFoundError,
    PermissionDeniedError,
    ProductNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .inventory import DEFAULT_BATCH_REASON, StockAdjustment
from .models import CartLine, Community, Order, OrderDraft, Product, Role
from .service import GroceryService

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class ProductSchema(BaseModel):
    id: str
    name: str
    category: str
    price: float
    unit: str
    stock: int
    description: Optional[str] = None
    image: Optional[str] = None


class ProductCreateRequest(BaseModel):
    """Request body for adding a product."""

    id: Optional[str] = Field(None, description="Product ID (generated if omitted)")
    name: str
    category: str
    price: float
    unit: str
    stock: int = 0
    description: Optional[str] = None
    image: Optional[str] = None


class ProductUpdateRequest(BaseModel):
    """Request body for editing a product. A stock change is logged as an adjustment."""

    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    unit: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    stock: Optional[int] = None


class ProductListResponse(BaseModel):
    products: list[ProductSchema]
    count: int


class StockAdjustRequest(BaseModel):
    new_stock: int = Field(..., description="Absolute stock level to set")
    reason: str = Field(..., min_length=1)


class BatchStockItem(BaseModel):
    product_id: str
    new_stock: int
    reason: str = DEFAULT_BATCH_REASON


class BatchStockRequest(BaseModel):
    adjustments: list[BatchStockItem]


class BatchResultSchema(BaseModel):
    succeeded: list[str]
    failed: list[str]
    errors: dict[str, str] = {}


class ProductStatisticsSchema(BaseModel):
    total: int
    in_stock: int
    out_of_stock: int
    low_stock: int


class StockMovementSchema(BaseModel):
    id: str
    sequence: int
    product_id: str
    product_name: str
    type: str
    quantity: int
    reason: str
    timestamp: str
    order_id: Optional[str] = None
    user_id: Optional[str] = None


class StockMovementListResponse(BaseModel):
    movements: list[StockMovementSchema]
    count: int


class OrderItemSchema(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    price: float


class StatusChangeSchema(BaseModel):
    status: str
    timestamp: str


class OrderSchema(BaseModel):
    id: str
    customer_id: str
    customer_name: str
    customer_address: str
    customer_phone: str
    community_id: str
    items: list[OrderItemSchema]
    total_amount: float
    status: str
    delivery_time: str
    created_at: str
    delivery_person_id: Optional[str] = None
    delivery_person_name: Optional[str] = None
    history: list[StatusChangeSchema] = []


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class CartLineSchema(BaseModel):
    product_id: str
    quantity: int


class OrderCreateRequest(BaseModel):
    """Request body for placing an order. Customer details default to the caller's profile."""

    items: list[CartLineSchema]
    delivery_time: str
    customer_address: Optional[str] = Field(None, description="Defaults to the profile address")
    customer_phone: Optional[str] = Field(None, description="Defaults to the profile phone")


class BatchStatusRequest(BaseModel):
    order_ids: list[str]
    status: str
    staff_id: Optional[str] = Field(None, description="Delivery user, required for 'accepted'")


class OrderStatisticsSchema(BaseModel):
    total: int
    pending: int
    accepted: int
    delivering: int
    completed: int
    cancelled: int
    total_amount: float


class CommunitySchema(BaseModel):
    id: str
    name: str
    address: str


class CommunityCreateRequest(BaseModel):
    name: str
    address: str


class CommunityUpdateRequest(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None


class UserSchema(BaseModel):
    id: str
    username: str
    role: str
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    community_id: Optional[str] = None


class UserCreateRequest(BaseModel):
    username: str
    password: str
    role: str
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    community_id: Optional[str] = None


class UserUpdateRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    community_id: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Helper Functions ---


def get_service(request: Request) -> GroceryService:
    """Get the service bound to the running app."""
    return request.app.state.service


def get_identity(
    request: Request,
    x_user_id: Optional[str] = Header(default=None),
) -> Identity:
    """Resolve the caller from the X-User-Id header, taken on trust."""
    if not x_user_id:
        raise AuthenticationError("missing X-User-Id header")
    service = get_service(request)
    try:
        user = service.users.get_user(x_user_id)
    except UserNotFoundError:
        raise AuthenticationError(f"unknown user {x_user_id}") from None
    return Identity.from_user(user)


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    ensure_can(identity, Action.MANAGE)
    return identity


def load_order(service: GroceryService, order_id: str) -> Order:
    order = service.get_order(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def product_to_schema(product: Product) -> ProductSchema:
    return ProductSchema(**product.to_dict())


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(**order.to_dict())


def user_to_schema(user) -> UserSchema:
    return UserSchema(**user.to_dict())


def fields_set(request: BaseModel) -> dict:
    """Only the fields the client actually sent."""
    return request.model_dump(exclude_unset=True)


# Map exception types to HTTP status codes; subclasses use their nearest entry
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    InsufficientStockError: 409,
    InvalidTransitionError: 409,
}


def status_code_for(exc: GrocerError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


# --- App Factory ---


def create_app(service: GroceryService | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the API around a service.

    Args:
        service: State to serve; built from settings when omitted.
        settings: Configuration; read from the environment when omitted.
    """
    settings = settings or get_settings()
    if service is None:
        service = GroceryService.from_settings(settings)

    app = FastAPI(
        title="grocer API",
        description="REST API for community grocery ordering and delivery",
        version=__version__,
    )
    app.state.service = service

    # CORS for the web front-end
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GrocerError)
    async def grocer_error_handler(request: Request, exc: GrocerError) -> JSONResponse:
        """Map GrocerError subclasses to appropriate HTTP responses."""
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error_type": type(exc).__name__},
        )

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    """Attach every endpoint to the app."""

    # --- Health & auth ---

    @app.get("/api/health")
    def health_check(service: GroceryService = Depends(get_service)):
        """Basic service status."""
        return {
            "status": "ok",
            "version": __version__,
            "products": len(service.catalog),
            "orders": len(service.orders),
            "stock_movements": len(service.ledger),
        }

    @app.post("/api/login", response_model=UserSchema)
    def login(request: LoginRequest, service: GroceryService = Depends(get_service)):
        """Check credentials; clients send the returned id as X-User-Id."""
        user = service.users.authenticate(request.username, request.password)
        if user is None:
            raise AuthenticationError("invalid username or password")
        return user_to_schema(user)

    # --- Products ---

    @app.get("/api/products", response_model=ProductListResponse)
    def list_products(service: GroceryService = Depends(get_service)):
        products = service.list_products()
        return ProductListResponse(
            products=[product_to_schema(p) for p in products],
            count=len(products),
        )

    @app.get("/api/products/low-stock", response_model=ProductListResponse)
    def list_low_stock(
        threshold: Optional[int] = Query(None, ge=0, description="Defaults to the configured threshold"),
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        products = service.low_stock(threshold)
        return ProductListResponse(
            products=[product_to_schema(p) for p in products],
            count=len(products),
        )

    @app.get("/api/products/out-of-stock", response_model=ProductListResponse)
    def list_out_of_stock(
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        products = service.out_of_stock()
        return ProductListResponse(
            products=[product_to_schema(p) for p in products],
            count=len(products),
        )

    @app.get("/api/products/statistics", response_model=ProductStatisticsSchema)
    def product_statistics(
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return ProductStatisticsSchema(**service.inventory.product_statistics().to_dict())

    @app.post("/api/products/batch-stock", response_model=BatchResultSchema)
    def batch_adjust_stock(
        request: BatchStockRequest,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(require_admin),
    ):
        """Apply stock corrections independently; failures never block other entries."""
        result = service.batch_adjust_stock(
            [StockAdjustment(a.product_id, a.new_stock, a.reason) for a in request.adjustments],
            user_id=identity.user_id,
        )
        return BatchResultSchema(**result.to_dict())

    @app.get("/api/products/{product_id}", response_model=ProductSchema)
    def get_product(product_id: str, service: GroceryService = Depends(get_service)):
        product = service.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product_to_schema(product)

    @app.post("/api/products", response_model=ProductSchema, status_code=201)
    def create_product(
        request: ProductCreateRequest,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(require_admin),
    ):
        data = request.model_dump(exclude={"id"})
        product = Product.create(**data)
        if request.id:
            product.id = request.id
        stored = service.add_product(product, user_id=identity.user_id).unwrap()
        return product_to_schema(stored)

    @app.patch("/api/products/{product_id}", response_model=ProductSchema)
    def update_product(
        product_id: str,
        request: ProductUpdateRequest,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(require_admin),
    ):
        updated = service.inventory.update_product(
            product_id, user_id=identity.user_id, **fields_set(request)
        ).unwrap()
        return product_to_schema(updated)

    @app.delete("/api/products/{product_id}", response_model=ProductSchema)
    def delete_product(
        product_id: str,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return product_to_schema(service.remove_product(product_id).unwrap())

    @app.put("/api/products/{product_id}/stock", response_model=ProductSchema)
    def adjust_stock(
        product_id: str,
        request: StockAdjustRequest,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(require_admin),
    ):
        updated = service.adjust_stock(
            product_id, request.new_stock, request.reason, user_id=identity.user_id
        ).unwrap()
        return product_to_schema(updated)

    # --- Stock ledger ---

    @app.get("/api/stock-movements", response_model=StockMovementListResponse)
    def list_stock_movements(
        product_id: Optional[str] = Query(None, description="Only movements for this product"),
        limit: Optional[int] = Query(None, ge=1, le=1000),
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        """Stock ledger, newest first."""
        movements = service.stock_movements(product_id)
        if limit:
            movements = movements[:limit]
        return StockMovementListResponse(
            movements=[StockMovementSchema(**m.to_dict()) for m in movements],
            count=len(movements),
        )

    # --- Orders ---

    @app.get("/api/orders", response_model=OrderListResponse)
    def list_orders(
        status: Optional[str] = Query(None, description="Only orders in this status"),
        mine: bool = Query(False, description="Delivery staff: only orders assigned to me"),
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        """Orders the caller may see: all (admin), community (delivery) or own (customer)."""
        if status is not None:
            orders = service.orders_by_status(status)
        elif identity.role == Role.CUSTOMER:
            orders = service.orders_by_customer(identity.user_id)
        elif identity.role == Role.DELIVERY and mine:
            orders = service.orders_by_delivery_staff(identity.user_id)
        elif identity.role == Role.DELIVERY:
            orders = service.orders_by_community(identity.community_id)
        else:
            orders = service.list_orders()

        orders = visible_orders(identity, orders)
        if mine:
            orders = [o for o in orders if o.delivery_person_id == identity.user_id]
        return OrderListResponse(
            orders=[order_to_schema(o) for o in orders],
            count=len(orders),
        )

    @app.get("/api/orders/statistics", response_model=OrderStatisticsSchema)
    def order_statistics(
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return OrderStatisticsSchema(**service.orders.order_statistics().to_dict())

    @app.post("/api/orders/batch-status", response_model=BatchResultSchema)
    def batch_update_status(
        request: BatchStatusRequest,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        """Move several orders through the normal guarded transitions."""
        staff_name = None
        if request.staff_id:
            staff = service.users.get_user(request.staff_id)
            if staff.role != Role.DELIVERY:
                raise ValidationError("orders can only be assigned to delivery staff", field="staff_id")
            staff_name = staff.name
        result = service.orders.batch_update_status(
            request.order_ids, request.status, request.staff_id, staff_name
        ).unwrap()
        return BatchResultSchema(**result.to_dict())

    @app.post("/api/orders", response_model=OrderSchema, status_code=201)
    def create_order(
        request: OrderCreateRequest,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        """Place an order for the calling customer."""
        ensure_can(identity, Action.CREATE)
        customer = service.users.get_user(identity.user_id)
        if not customer.community_id:
            raise ValidationError("customer has no community", field="community_id")
        draft = OrderDraft(
            customer_id=customer.id,
            customer_name=customer.name,
            customer_address=request.customer_address or customer.address or "",
            customer_phone=request.customer_phone or customer.phone or "",
            community_id=customer.community_id,
            items=[CartLine(line.product_id, line.quantity) for line in request.items],
            delivery_time=request.delivery_time,
        )
        return order_to_schema(service.create_order(draft).unwrap())

    @app.get("/api/orders/{order_id}", response_model=OrderSchema)
    def get_order(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        order = load_order(service, order_id)
        ensure_can(identity, Action.VIEW, order)
        return order_to_schema(order)

    @app.get("/api/orders/{order_id}/history", response_model=list[StatusChangeSchema])
    def get_order_history(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        order = load_order(service, order_id)
        ensure_can(identity, Action.VIEW, order)
        return [StatusChangeSchema(**h.to_dict()) for h in service.orders.status_history(order_id)]

    @app.post("/api/orders/{order_id}/accept", response_model=OrderSchema)
    def accept_order(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        ensure_can(identity, Action.ACCEPT, load_order(service, order_id))
        result = service.accept_order(order_id, identity.user_id, identity.name)
        return order_to_schema(result.unwrap())

    @app.post("/api/orders/{order_id}/start-delivery", response_model=OrderSchema)
    def start_delivery(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        ensure_can(identity, Action.START, load_order(service, order_id))
        return order_to_schema(service.start_delivery(order_id).unwrap())

    @app.post("/api/orders/{order_id}/complete", response_model=OrderSchema)
    def complete_delivery(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        ensure_can(identity, Action.COMPLETE, load_order(service, order_id))
        return order_to_schema(service.complete_delivery(order_id).unwrap())

    @app.post("/api/orders/{order_id}/cancel", response_model=OrderSchema)
    def cancel_order(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        ensure_can(identity, Action.CANCEL, load_order(service, order_id))
        return order_to_schema(service.cancel_order(order_id).unwrap())

    @app.post("/api/orders/{order_id}/confirm-cancel", response_model=OrderSchema)
    def confirm_cancel_order(
        order_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        ensure_can(identity, Action.CONFIRM_CANCEL, load_order(service, order_id))
        return order_to_schema(service.confirm_cancel_order(order_id).unwrap())

    # --- Communities ---

    @app.get("/api/communities", response_model=list[CommunitySchema])
    def list_communities(service: GroceryService = Depends(get_service)):
        return [CommunitySchema(**c.to_dict()) for c in service.communities.list_communities()]

    @app.get("/api/communities/{community_id}", response_model=CommunitySchema)
    def get_community(community_id: str, service: GroceryService = Depends(get_service)):
        return CommunitySchema(**service.communities.get_community(community_id).to_dict())

    @app.post("/api/communities", response_model=CommunitySchema, status_code=201)
    def create_community(
        request: CommunityCreateRequest,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        community = service.communities.add_community(Community.create(request.name, request.address))
        return CommunitySchema(**community.to_dict())

    @app.patch("/api/communities/{community_id}", response_model=CommunitySchema)
    def update_community(
        community_id: str,
        request: CommunityUpdateRequest,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        community = service.communities.update_community(community_id, **fields_set(request))
        return CommunitySchema(**community.to_dict())

    @app.delete("/api/communities/{community_id}", response_model=CommunitySchema)
    def delete_community(
        community_id: str,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return CommunitySchema(**service.remove_community(community_id).to_dict())

    # --- Users ---

    @app.get("/api/users", response_model=list[UserSchema])
    def list_users(
        role: Optional[str] = Query(None, description="Only users with this role"),
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        users = service.users.users_by_role(role) if role else service.users.list_users()
        return [user_to_schema(u) for u in users]

    @app.get("/api/users/me", response_model=UserSchema)
    def get_me(
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(get_identity),
    ):
        return user_to_schema(service.users.get_user(identity.user_id))

    @app.get("/api/users/{user_id}", response_model=UserSchema)
    def get_user(
        user_id: str,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return user_to_schema(service.users.get_user(user_id))

    @app.post("/api/users", response_model=UserSchema, status_code=201)
    def create_user(
        request: UserCreateRequest,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return user_to_schema(service.users.add_user(**request.model_dump()))

    @app.patch("/api/users/{user_id}", response_model=UserSchema)
    def update_user(
        user_id: str,
        request: UserUpdateRequest,
        service: GroceryService = Depends(get_service),
        _: Identity = Depends(require_admin),
    ):
        return user_to_schema(service.users.update_user(user_id, **fields_set(request)))

    @app.delete("/api/users/{user_id}", response_model=UserSchema)
    def delete_user(
        user_id: str,
        service: GroceryService = Depends(get_service),
        identity: Identity = Depends(require_admin),
    ):
        if user_id == identity.user_id:
            raise ValidationError("administrators cannot remove their own account", field="user_id")
        return user_to_schema(service.users.remove_user(user_id))
