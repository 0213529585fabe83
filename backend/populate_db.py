import os
import sys
import random

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

from database import SessionLocal, init_db
from models.users import User
from models.catalog import Product, ProductCategory, ProductVariant
from models.recipe import GameType, Recipe, RecipeCategory
from models.discount import DiscountCode, DiscountType
from utils.hashing import get_password_hash

# Configuration
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

GAME_TYPES = [
    ("Venison", "venison", "Whitetail, mule deer and other deer species."),
    ("Elk", "elk", "Lean, mild red meat from elk."),
    ("Wild Boar", "wild-boar", "Feral hog and wild boar."),
    ("Duck", "duck", "Mallard, teal and other waterfowl."),
    ("Pheasant", "pheasant", "Upland birds."),
]

RECIPE_CATEGORIES = [
    ("Grilling", "grilling"),
    ("Slow Cooker", "slow-cooker"),
    ("Smoking", "smoking"),
    ("Sausage & Charcuterie", "sausage-charcuterie"),
    ("Quick Weeknight", "quick-weeknight"),
]

PRODUCT_CATEGORIES = [
    ("Seasonings", "seasonings"),
    ("Apparel", "apparel"),
    ("Kitchen Tools", "kitchen-tools"),
]

# (name, slug, category slug, base price, weight oz, variants)
# variants: (name, price override, inventory, option1 value)
PRODUCTS = [
    ("Backstrap Rub", "backstrap-rub", "seasonings", 12.99, 6, [
        ("4 oz", None, 120, "4 oz"), ("8 oz", 19.99, 80, "8 oz"),
    ]),
    ("Wild Game Jerky Cure", "jerky-cure", "seasonings", 9.99, 4, [
        ("Original", None, 200, "Original"), ("Teriyaki", None, 150, "Teriyaki"),
    ]),
    ("Hunt Kitchen Logo Tee", "logo-tee", "apparel", 24.99, 8, [
        ("Small / Olive", None, 25, "Small"), ("Medium / Olive", None, 40, "Medium"),
        ("Large / Olive", None, 40, "Large"), ("XL / Olive", 26.99, 15, "XL"),
    ]),
    ("Boning Knife 6\"", "boning-knife", "kitchen-tools", 64.00, 12, [
        ("Standard", None, 30, "Standard"),
    ]),
]

RECIPES = [
    ("Grilled Venison Backstrap", "grilled-venison-backstrap", "venison", ["grilling", "quick-weeknight"]),
    ("Slow Cooker Elk Roast", "slow-cooker-elk-roast", "elk", ["slow-cooker"]),
    ("Smoked Wild Boar Shoulder", "smoked-wild-boar-shoulder", "wild-boar", ["smoking"]),
    ("Pan-Seared Duck Breast", "pan-seared-duck-breast", "duck", ["quick-weeknight"]),
    ("Venison Summer Sausage", "venison-summer-sausage", "venison", ["sausage-charcuterie", "smoking"]),
]


def _ensure_admin(session) -> bool:
    if session.query(User).filter(User.role == "admin").first():
        return True
    if not (ADMIN_EMAIL and ADMIN_PASSWORD):
        print("No admin user in the database. Set ADMIN_EMAIL and ADMIN_PASSWORD or create one manually.")
        return False
    session.add(User(email=ADMIN_EMAIL.lower(), password_hash=get_password_hash(ADMIN_PASSWORD), role="admin"))
    session.commit()
    print(f"Created admin user {ADMIN_EMAIL}")
    return True


def _seed_taxonomy(session):
    game_types, recipe_categories, product_categories = {}, {}, {}
    for name, slug, description in GAME_TYPES:
        game_types[slug] = GameType(name=name, slug=slug, description=description)
    for order, (name, slug) in enumerate(RECIPE_CATEGORIES):
        recipe_categories[slug] = RecipeCategory(name=name, slug=slug, display_order=order)
    for order, (name, slug) in enumerate(PRODUCT_CATEGORIES):
        product_categories[slug] = ProductCategory(name=name, slug=slug, display_order=order)
    session.add_all([*game_types.values(), *recipe_categories.values(), *product_categories.values()])
    session.flush()
    return game_types, recipe_categories, product_categories


def _seed_products(session, product_categories):
    for name, slug, category_slug, base_price, weight, variants in PRODUCTS:
        product = Product(
            name=name,
            slug=slug,
            description=f"{name} from The Hunt Kitchen.",
            category_id=product_categories[category_slug].id,
            base_price=base_price,
            sku=slug.upper().replace("-", "")[:10],
            weight_oz=weight,
            featured_image_url=f"https://picsum.photos/seed/{slug}/600/600",
        )
        for index, (variant_name, price, inventory, option) in enumerate(variants, start=1):
            product.variants.append(ProductVariant(
                name=variant_name,
                sku=f"{product.sku}-{index}",
                price=price,
                inventory_quantity=inventory,
                option1_name="Size" if category_slug != "seasonings" else "Flavor",
                option1_value=option,
            ))
        session.add(product)


def _seed_recipes(session, game_types, recipe_categories):
    for title, slug, game_slug, category_slugs in RECIPES:
        prep, cook = random.choice([10, 15, 20, 30]), random.choice([20, 45, 240, 480])
        session.add(Recipe(
            title=title,
            slug=slug,
            description=f"A field-to-table take on {title.lower()}.",
            featured_image_url=f"https://picsum.photos/seed/{slug}/1200/800",
            game_type_id=game_types[game_slug].id,
            prep_time_minutes=prep,
            cook_time_minutes=cook,
            total_time_minutes=prep + cook,
            servings=random.choice([2, 4, 6]),
            ingredients=[
                {"amount": "2", "unit": "lb", "ingredient": game_types[game_slug].name.lower(), "notes": "trimmed"},
                {"amount": "1", "unit": "tbsp", "ingredient": "kosher salt", "notes": None},
                {"amount": "2", "unit": "tsp", "ingredient": "black pepper", "notes": "coarse"},
            ],
            instructions=[
                {"step_number": 1, "text": "Pat the meat dry and season generously."},
                {"step_number": 2, "text": "Cook to an internal temperature of 130F for red meat, 165F for fowl legs."},
                {"step_number": 3, "text": "Rest for 10 minutes before slicing against the grain."},
            ],
            is_featured=slug == "grilled-venison-backstrap",
            categories=[recipe_categories[c] for c in category_slugs],
        ))


def load_all_data():
    """Seed taxonomy, catalog, recipes and a welcome discount code."""
    init_db()
    session = SessionLocal()
    try:
        if not _ensure_admin(session):
            return
        if session.query(Product).first() or session.query(Recipe).first():
            print("Database already contains catalog data, skipping.")
            return

        game_types, recipe_categories, product_categories = _seed_taxonomy(session)
        _seed_products(session, product_categories)
        _seed_recipes(session, game_types, recipe_categories)
        session.add(DiscountCode(
            code="WELCOME10",
            description="10% off your first order",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=10,
            maximum_discount_amount=25,
        ))
        session.commit()
        print(f"Inserted {len(PRODUCTS)} products and {len(RECIPES)} recipes.")
    except Exception as e:
        session.rollback()
        print(f"Seeding failed: {e}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    load_all_data()
