# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, Optional
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./hunt_kitchen.db"
    LOG_LEVEL: str = "INFO"

    FRONTEND_URL: str = "http://localhost:3000"

    # Stripe checkout
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "usd"

    # Shopify Storefront API (optional catalog source)
    SHOPIFY_STORE_DOMAIN: Optional[str] = None
    SHOPIFY_STOREFRONT_ACCESS_TOKEN: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-01"

    # Flat tax: subtotal * TAX_RATE_PERCENT / 100 + TAX_FLAT_AMOUNT
    TAX_RATE_PERCENT: float = 0.0
    TAX_FLAT_AMOUNT: float = 0.0
    FREE_SHIPPING_THRESHOLD: float = 75.0

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

settings = Settings()
