# utils/shopify_client.py
import logging
from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi import Request

from config import settings

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = """
  fragment ProductFields on Product {
    id
    title
    handle
    description
    availableForSale
    productType
    vendor
    tags
    priceRange { minVariantPrice { amount currencyCode } }
    compareAtPriceRange { minVariantPrice { amount currencyCode } }
    featuredImage { url altText }
    variants(first: 100) {
      edges {
        node {
          id
          title
          availableForSale
          quantityAvailable
          sku
          price { amount currencyCode }
          compareAtPrice { amount currencyCode }
          selectedOptions { name value }
          image { url altText }
        }
      }
    }
  }
"""

GET_PRODUCTS_QUERY = PRODUCT_FIELDS + """
  query GetProducts($first: Int!, $after: String, $sortKey: ProductSortKeys, $reverse: Boolean, $query: String) {
    products(first: $first, after: $after, sortKey: $sortKey, reverse: $reverse, query: $query) {
      edges { node { ...ProductFields } cursor }
      pageInfo { hasNextPage endCursor }
    }
  }
"""

GET_PRODUCT_BY_HANDLE_QUERY = PRODUCT_FIELDS + """
  query GetProductByHandle($handle: String!) {
    product(handle: $handle) { ...ProductFields }
  }
"""

SORT_OPTIONS = {
    "price-asc": ("PRICE", False),
    "price-desc": ("PRICE", True),
    "title-asc": ("TITLE", False),
    "title-desc": ("TITLE", True),
    "best-selling": ("BEST_SELLING", False),
    "newest": ("CREATED_AT", True),
}


class ShopifyError(Exception):
    pass


def _money(node: Optional[dict]) -> Optional[float]:
    if not node or node.get("amount") in (None, ""):
        return None
    return float(node["amount"])


def normalize_variant(node: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": node["id"],
        "title": node.get("title"),
        "available_for_sale": bool(node.get("availableForSale")),
        "quantity_available": node.get("quantityAvailable"),
        "price": _money(node.get("price")) or 0.0,
        "compare_at_price": _money(node.get("compareAtPrice")),
        "currency_code": (node.get("price") or {}).get("currencyCode"),
        "selected_options": {o["name"]: o["value"] for o in node.get("selectedOptions") or []},
        "image_url": (node.get("image") or {}).get("url"),
        "sku": node.get("sku"),
    }


def normalize_product(node: Dict[str, Any]) -> Dict[str, Any]:
    price_range = node.get("priceRange") or {}
    compare_range = node.get("compareAtPriceRange") or {}
    return {
        "id": node["id"],
        "handle": node["handle"],
        "title": node.get("title"),
        "description": node.get("description"),
        "available_for_sale": bool(node.get("availableForSale")),
        "product_type": node.get("productType"),
        "vendor": node.get("vendor"),
        "tags": node.get("tags") or [],
        "price": _money(price_range.get("minVariantPrice")) or 0.0,
        "compare_at_price": _money(compare_range.get("minVariantPrice")) or None,
        "image_url": (node.get("featuredImage") or {}).get("url"),
        "variants": [normalize_variant(e["node"]) for e in (node.get("variants") or {}).get("edges", [])],
    }


def build_search_query(
    search: Optional[str] = None,
    product_type: Optional[str] = None,
    vendor: Optional[str] = None,
    tag: Optional[str] = None,
    available: Optional[bool] = None,
) -> Optional[str]:
    parts = []
    if search:
        parts.append(search)
    if product_type:
        parts.append(f"product_type:{product_type}")
    if vendor:
        parts.append(f"vendor:{vendor}")
    if tag:
        parts.append(f"tag:{tag}")
    if available is True:
        parts.append("available_for_sale:true")
    return " AND ".join(parts) if parts else None


def map_sort_option(sort: Optional[str]) -> Tuple[str, bool]:
    return SORT_OPTIONS.get(sort or "newest", SORT_OPTIONS["newest"])


class ShopifyClient:
    def __init__(self, store_domain: Optional[str], access_token: Optional[str],
                 api_version: str = "2024-01", transport: Optional[httpx.AsyncBaseTransport] = None):
        # Tolerate a pasted URL instead of a bare domain
        domain = (store_domain or "").replace("https://", "").replace("http://", "").strip("/")
        self.store_domain = domain or None
        self.access_token = access_token
        self.endpoint = f"https://{domain}/api/{api_version}/graphql.json" if domain else ""
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "ShopifyClient":
        client = cls(settings.SHOPIFY_STORE_DOMAIN, settings.SHOPIFY_STOREFRONT_ACCESS_TOKEN,
                     settings.SHOPIFY_API_VERSION)
        if not client.is_configured:
            logger.warning("Shopify environment variables not configured; using the local catalog.")
        return client

    @property
    def is_configured(self) -> bool:
        return bool(self.store_domain and self.access_token)

    async def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured:
            raise ShopifyError("Shopify is not configured")
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self.access_token,
        }
        async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
            try:
                response = await client.post(self.endpoint, json={"query": query, "variables": variables},
                                             headers=headers)
                response.raise_for_status()
            except (httpx.RequestError, httpx.HTTPStatusError) as e:
                logger.error(f"Shopify API error: {e}")
                raise ShopifyError(str(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Shopify returned a non-JSON body (HTTP %s)", response.status_code)
            raise ShopifyError("Invalid response from Shopify") from e
        if not isinstance(payload, dict):
            raise ShopifyError("Invalid response from Shopify")
        if payload.get("errors"):
            logger.error("Shopify GraphQL errors: %s", payload["errors"])
            raise ShopifyError(payload["errors"][0].get("message", "Shopify GraphQL error"))
        return payload.get("data") or {}

    async def get_products(self, first: int = 50, after: Optional[str] = None, sort_key: str = "CREATED_AT",
                           reverse: bool = True, query: Optional[str] = None) -> Dict[str, Any]:
        data = await self._query(GET_PRODUCTS_QUERY, {
            "first": first, "after": after, "sortKey": sort_key, "reverse": reverse, "query": query,
        })
        products = data.get("products") or {}
        return {
            "products": [normalize_product(e["node"]) for e in products.get("edges", [])],
            "page_info": products.get("pageInfo") or {},
        }

    async def get_product_by_handle(self, handle: str) -> Optional[Dict[str, Any]]:
        try:
            data = await self._query(GET_PRODUCT_BY_HANDLE_QUERY, {"handle": handle})
        except ShopifyError as e:
            logger.error('Failed to fetch Shopify product "%s": %s', handle, e)
            return None
        node = data.get("product")
        return normalize_product(node) if node else None


def get_catalog_client(request: Request) -> ShopifyClient:
    return request.app.state.catalog_client
