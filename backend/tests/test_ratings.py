import pytest

from models.recipe import Recipe, RecipeCategory, RecipeRating
from utils.ratings import delete_rating, recalculate_rating, submit_rating


def _rate(client, slug, rating, headers=None, review=None):
    body = {"rating": rating}
    if review is not None:
        body["review_text"] = review
    return client.post(f"/recipes/{slug}/rate", json=body, headers=headers or {})


def test_average_counts_unapproved_but_list_hides_them(client, db, recipe, customer_headers,
                                                      other_customer_headers):
    first = _rate(client, recipe.slug, 5, customer_headers, "Perfect medium rare").json()
    _rate(client, recipe.slug, 3, other_customer_headers)
    db.get(RecipeRating, first["rating"]["id"]).is_approved = True
    db.commit()

    body = client.get(f"/recipes/{recipe.slug}/ratings").json()

    assert body["average_rating"] == 4.0
    assert body["rating_count"] == 2
    assert [r["rating"] for r in body["ratings"]] == [5]
    assert body["ratings"][0]["review_text"] == "Perfect medium rare"
    assert body["user_rating"] is None


def test_submit_returns_pending_rating_and_aggregate(client, recipe, customer_headers):
    r = _rate(client, recipe.slug, 4, customer_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["rating"]["is_approved"] is False
    assert body["average_rating"] == 4.0
    assert body["rating_count"] == 1
    assert "approved" in body["message"]


def test_second_rating_replaces_first_and_resets_approval(client, db, recipe, customer, customer_headers):
    _rate(client, recipe.slug, 2, customer_headers)
    row = db.query(RecipeRating).one()
    row.is_approved = True
    db.commit()

    body = _rate(client, recipe.slug, 5, customer_headers, "Tried it again").json()

    assert body["rating_count"] == 1
    assert body["average_rating"] == 5.0
    db.expire_all()
    row = db.query(RecipeRating).one()
    assert row.user_id == customer.id
    assert row.rating == 5
    assert row.is_approved is False


def test_own_unapproved_rating_is_returned_to_its_author(client, recipe, customer_headers):
    _rate(client, recipe.slug, 3, customer_headers)

    body = client.get(f"/recipes/{recipe.slug}/ratings", headers=customer_headers).json()

    assert body["ratings"] == []
    assert body["user_rating"]["rating"] == 3


def test_guest_ratings_do_not_replace_each_other(client, db, recipe):
    _rate(client, recipe.slug, 5)
    _rate(client, recipe.slug, 1)
    assert db.query(RecipeRating).count() == 2
    db.refresh(recipe)
    assert recipe.average_rating == 3.0


@pytest.mark.parametrize("value", [0, 6])
def test_out_of_range_rating_rejected(client, recipe, value):
    r = _rate(client, recipe.slug, value)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "rating"


def test_rating_unknown_recipe_404(client):
    assert _rate(client, "no-such-recipe", 4).status_code == 404


def test_unpublished_recipe_cannot_be_rated(client, db, recipe):
    recipe.is_published = False
    db.commit()
    assert _rate(client, recipe.slug, 4).status_code == 404


def test_admin_approves_from_queue(client, recipe, customer_headers, admin_headers):
    rating_id = _rate(client, recipe.slug, 4, customer_headers).json()["rating"]["id"]

    queue = client.get("/admin/ratings", headers=admin_headers).json()
    assert [r["id"] for r in queue] == [rating_id]

    r = client.post(f"/admin/ratings/{rating_id}/approve", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["is_approved"] is True

    assert client.get("/admin/ratings", headers=admin_headers).json() == []
    listed = client.get(f"/recipes/{recipe.slug}/ratings").json()["ratings"]
    assert [r["id"] for r in listed] == [rating_id]


def test_admin_delete_recalculates(client, recipe, customer_headers, other_customer_headers, admin_headers):
    low = _rate(client, recipe.slug, 1, customer_headers).json()["rating"]["id"]
    _rate(client, recipe.slug, 5, other_customer_headers)

    r = client.delete(f"/admin/ratings/{low}", headers=admin_headers)

    assert r.status_code == 200
    assert r.json()["average_rating"] == 5.0
    assert r.json()["rating_count"] == 1
    assert client.delete(f"/admin/ratings/{low}", headers=admin_headers).status_code == 404


def test_moderation_requires_admin(client, recipe, customer_headers):
    assert client.get("/admin/ratings", headers=customer_headers).status_code == 403


def test_recalculate_with_no_ratings(db, recipe):
    recipe.average_rating = 4.5
    recipe.rating_count = 3
    recalculate_rating(db, recipe)
    assert recipe.average_rating == 0.0
    assert recipe.rating_count == 0


def test_average_rounds_to_one_decimal(db, recipe, customer, other_customer, admin_user):
    submit_rating(db, recipe, customer.id, 5)
    submit_rating(db, recipe, other_customer.id, 4)
    submit_rating(db, recipe, admin_user.id, 4)
    assert recipe.average_rating == 4.3
    assert recipe.rating_count == 3

    delete_rating(db, db.query(RecipeRating).filter(RecipeRating.user_id == customer.id).one())
    assert recipe.average_rating == 4.0
    assert recipe.rating_count == 2


def test_recipe_list_filters_and_sorts(client, db, recipe):
    other = Recipe(title="Duck Confit", slug="duck-confit", description="Slow.", average_rating=4.8,
                   rating_count=6, is_featured=True)
    other.categories.append(RecipeCategory(name="Waterfowl", slug="waterfowl"))
    hidden = Recipe(title="Draft Stew", slug="draft-stew", is_published=False)
    db.add_all([other, hidden])
    db.commit()

    listed = client.get("/recipes").json()
    assert listed["total"] == 2
    assert "draft-stew" not in [r["slug"] for r in listed["items"]]

    by_rating = client.get("/recipes", params={"sort": "rating"}).json()
    assert by_rating["items"][0]["slug"] == "duck-confit"

    assert [r["slug"] for r in client.get("/recipes", params={"game_type": "venison"}).json()["items"]] == [
        "grilled-venison-backstrap"]
    assert [r["slug"] for r in client.get("/recipes", params={"category": "waterfowl"}).json()["items"]] == [
        "duck-confit"]
    assert client.get("/recipes", params={"featured": True}).json()["total"] == 1
    assert client.get("/recipes", params={"q": "backstrap"}).json()["total"] == 1


def test_recipe_detail_counts_views(client, recipe):
    first = client.get(f"/recipes/{recipe.slug}").json()
    second = client.get(f"/recipes/{recipe.slug}").json()
    assert second["view_count"] == first["view_count"] + 1
    assert first["game_type"]["slug"] == "venison"
    assert first["instructions"][0]["text"] == "Grill to 130F."


def test_categories_and_game_types(client, db, recipe):
    db.add(RecipeCategory(name="Grilling", slug="grilling", display_order=1))
    db.add(RecipeCategory(name="Archived", slug="archived", is_active=False))
    db.commit()

    assert [c["slug"] for c in client.get("/categories/recipes").json()] == ["grilling"]
    assert [g["slug"] for g in client.get("/game-types").json()] == ["venison"]
    assert client.get("/categories/products").json() == []
