# marketplace/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from marketplace.core.config import settings
from marketplace.core.logging import setup_logging
from marketplace.core.metrics import export_metrics
from marketplace.api.error_handlers import register_exception_handlers
from marketplace.api.routers import admin, auth, cart, orders, products, seller
from marketplace.middleware import ObservabilityMiddleware
from marketplace.initial_data import create_initial_admin

# --- Models registration (Alembic autogenerate and create_all see every table) ---
import marketplace.models.account  # noqa: F401
import marketplace.models.product  # noqa: F401
import marketplace.models.cart     # noqa: F401
import marketplace.models.order    # noqa: F401

# --- Celery task registration (login alerts look the task up by name) ---
import marketplace.tasks  # noqa: F401

TAGS_METADATA = [
    {"name": "auth", "description": "Signup, login and token refresh for buyers, sellers and admins."},
    {"name": "products", "description": "Public catalog browsing."},
    {"name": "cart", "description": "The buyer's cart, validated against live stock."},
    {"name": "orders", "description": "Checkout, order history and cancellation."},
    {"name": "seller", "description": "Seller catalog management and per-line fulfillment."},
    {"name": "admin", "description": "Account administration."},
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    await create_initial_admin()
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "Marketplace backend: buyers, independent sellers and administrators around a shared catalog.\n\n"
        "- **Cart**: one cart per buyer, checked against live inventory on every read.\n"
        "- **Checkout**: a single transaction creates the order and takes the stock.\n"
        "- **Fulfillment**: each seller moves their own lines from pending to shipped to delivered.\n"
        "- **Cancellation**: pending orders can be cancelled and their stock returned."
    ),
    openapi_tags=TAGS_METADATA,
    lifespan=lifespan,
    swagger_ui_parameters={"persistAuthorization": True, "displayRequestDuration": True},
)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- Routers ---
app.include_router(auth.router, prefix=settings.API_V1_STR)
app.include_router(products.router, prefix=settings.API_V1_STR)
app.include_router(cart.router, prefix=settings.API_V1_STR)
app.include_router(orders.router, prefix=settings.API_V1_STR)
app.include_router(seller.router, prefix=settings.API_V1_STR)
app.include_router(admin.router, prefix=settings.API_V1_STR)


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)


@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs"}
