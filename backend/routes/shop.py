# backend/routes/shop.py
import logging
from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from database import get_db
from models.catalog import Product, ProductCategory
from schemas.product import ShopProduct, ShopProductPage, VariantOut
from utils.shopify_client import (
    ShopifyClient, ShopifyError, build_search_query, get_catalog_client, map_sort_option,
)

router = APIRouter(prefix="/shop", tags=["Shop"])
logger = logging.getLogger(__name__)

SortOption = Literal["newest", "price-asc", "price-desc", "title-asc", "title-desc", "best-selling"]


def _local_variant_out(product: Product, variant) -> VariantOut:
    in_stock = not product.track_inventory or variant.inventory_quantity > 0
    return VariantOut(
        id=variant.id,
        name=variant.name,
        sku=variant.sku or product.sku,
        price=variant.effective_price,
        compare_at_price=variant.compare_at_price or product.compare_at_price,
        options=variant.options,
        image_url=variant.image_url,
        inventory_quantity=variant.inventory_quantity,
        available=bool(variant.is_active and in_stock),
    )


def _local_product_out(product: Product) -> ShopProduct:
    variants = [_local_variant_out(product, v) for v in product.variants if v.is_active]
    prices = [v.price for v in variants]
    return ShopProduct(
        id=str(product.id),
        source="local",
        name=product.name,
        slug=product.slug,
        description=product.short_description or product.description,
        category=product.category.name if product.category else None,
        price=min(prices) if prices else product.base_price,
        compare_at_price=product.compare_at_price,
        image_url=product.featured_image_url,
        available=any(v.available for v in variants),
        variants=variants,
    )


def _shopify_product_out(data: dict) -> ShopProduct:
    return ShopProduct(
        id=data["id"],
        source="shopify",
        name=data["title"] or data["handle"],
        slug=data["handle"],
        description=data["description"],
        category=data["product_type"] or None,
        price=data["price"],
        compare_at_price=data["compare_at_price"],
        image_url=data["image_url"],
        available=data["available_for_sale"],
        variants=[
            VariantOut(
                id=v["id"],
                name=v["title"] or "Default",
                sku=v["sku"],
                price=v["price"],
                compare_at_price=v["compare_at_price"],
                options=v["selected_options"],
                image_url=v["image_url"],
                inventory_quantity=v["quantity_available"],
                available=v["available_for_sale"],
            )
            for v in data["variants"]
        ],
    )


async def _shopify_products(client: ShopifyClient, q, category, sort, page_size, after) -> ShopProductPage:
    sort_key, reverse = map_sort_option(sort)
    try:
        result = await client.get_products(
            first=page_size, after=after, sort_key=sort_key, reverse=reverse,
            query=build_search_query(search=q, product_type=category),
        )
    except ShopifyError as e:
        # Storefront degrades to an empty listing rather than an error page
        logger.error("Shopify product listing failed: %s", e)
        return ShopProductPage(items=[], total=0, page=1, page_size=page_size, source="shopify")

    items = [_shopify_product_out(p) for p in result["products"]]
    page_info = result["page_info"]
    return ShopProductPage(
        items=items, total=len(items), page=1, page_size=page_size, source="shopify",
        next_cursor=page_info.get("endCursor") if page_info.get("hasNextPage") else None,
    )


@router.get("/products", response_model=ShopProductPage)
async def list_products_for_shop(
    q: Optional[str] = Query(None, description="Search by name or description"),
    category: Optional[str] = Query(None, description="Category slug (product type on Shopify)"),
    sort: SortOption = "newest",
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100),
    after: Optional[str] = Query(None, description="Shopify page cursor"),
    db: Session = Depends(get_db),
    catalog: ShopifyClient = Depends(get_catalog_client),
):
    if catalog.is_configured:
        return await _shopify_products(catalog, q, category, sort, page_size, after)

    query = db.query(Product).options(
        selectinload(Product.variants), selectinload(Product.category)
    ).filter(Product.is_active.is_(True))

    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))
    if category:
        query = query.join(Product.category).filter(ProductCategory.slug == category)

    sort_map = {
        "newest": (Product.created_at.desc(), Product.id.desc()),
        "price-asc": (Product.base_price.asc(), Product.id),
        "price-desc": (Product.base_price.desc(), Product.id),
        "title-asc": (Product.name.asc(),),
        "title-desc": (Product.name.desc(),),
        "best-selling": (Product.is_featured.desc(), Product.id),
    }
    query = query.order_by(*sort_map[sort])

    total = query.count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return ShopProductPage(
        items=[_local_product_out(p) for p in rows],
        total=total, page=page, page_size=page_size, source="local",
    )


@router.get("/products/{slug}", response_model=ShopProduct)
async def get_product(
    slug: str,
    db: Session = Depends(get_db),
    catalog: ShopifyClient = Depends(get_catalog_client),
):
    if catalog.is_configured:
        data = await catalog.get_product_by_handle(slug)
        if not data:
            raise HTTPException(status_code=404, detail="Product not found")
        return _shopify_product_out(data)

    product = db.query(Product).filter(Product.slug == slug, Product.is_active.is_(True)).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return _local_product_out(product)
