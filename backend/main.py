# backend/main.py
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from config import settings
from database import init_db
from utils.checkout import CheckoutError
from utils.shopify_client import ShopifyClient
from utils.stripe_client import StripeClient

# Router imports
from routes.auth import router as auth_router
from routes.admin import router as admin_router
from routes.cart import router as cart_router
from routes.categories import router as categories_router
from routes.checkout import router as checkout_router
from routes.logs import router as logs_router
from routes.orders import router as orders_router
from routes.recipes import router as recipes_router
from routes.shop import router as shop_router
from routes.webhooks import router as webhooks_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialization
init_db()

app = FastAPI(title="The Hunt Kitchen API", version="1.0.0")

# External clients, built once and handed to routes as dependencies
app.state.payment_client = StripeClient.from_settings()
app.state.catalog_client = ShopifyClient.from_settings()

origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Cart-Session"],
)


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "body"


# Field-level 400s instead of FastAPI's default 422
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "").removeprefix("Value error, ")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(CheckoutError)
async def checkout_exception_handler(request: Request, exc: CheckoutError):
    logger.info("Checkout rejected: %s", exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "errors": exc.errors})


# Router registration
app.include_router(auth_router)
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(webhooks_router)
app.include_router(orders_router)
app.include_router(admin_router)
app.include_router(logs_router)
app.include_router(recipes_router)
app.include_router(categories_router)
app.include_router(shop_router)


@app.get("/")
def read_root():
    return {"message": "The Hunt Kitchen API is running"}
