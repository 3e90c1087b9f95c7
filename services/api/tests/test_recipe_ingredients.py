"""Recipes with normalized ingredient lines (product + amount + unit)."""

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from healthymeal.models import Recipe, RecipeIngredient
from healthymeal.schemas import RecipeCreateCommand
from healthymeal.services import recipes as recipe_service

from conftest import USER_ID


def _payload(ingredients, **overrides):
    payload = {
        "name": "Chicken and rice",
        "mealType": "dinner",
        "difficulty": "medium",
        "instructions": "Cook the rice, grill the chicken, serve together.",
        "ingredients": ingredients,
    }
    payload.update(overrides)
    return payload


def test_create_with_normalized_ingredients(client, headers, products):
    ingredients = [
        {"productId": products["Chicken breast"], "amount": 250, "unit": "gram"},
        {"productId": products["Rice"], "amount": 1.5, "unit": "cup"},
    ]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 201, response.text

    data = response.json()
    assert [item["product"]["name"] for item in data["ingredients"]] == ["Chicken breast", "Rice"]
    assert data["ingredients"][0]["amount"] == 250
    assert data["ingredients"][1]["amount"] == 1.5
    assert data["ingredients"][1]["unit"] == "cup"

    fetched = client.get(f"/api/recipes/{data['id']}", headers=headers).json()
    assert fetched["ingredients"] == data["ingredients"]


def test_unknown_product_is_404_and_nothing_persists(client, headers, products, db_session):
    ingredients = [
        {"productId": products["Rice"], "amount": 1, "unit": "cup"},
        {"productId": str(uuid.uuid4()), "amount": 1, "unit": "piece"},
    ]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "product_not_found"
    assert db_session.query(Recipe).count() == 0


def test_duplicate_product_is_400(client, headers, products):
    ingredients = [
        {"productId": products["Rice"], "amount": 1, "unit": "cup"},
        {"productId": products["Rice"], "amount": 200, "unit": "gram"},
    ]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "duplicate_ingredient"


def test_unsupported_unit_is_400(client, headers, products):
    ingredients = [{"productId": products["Rice"], "amount": 1, "unit": "handful"}]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_ingredient_unit"


def test_more_than_50_ingredients_is_422(client, headers):
    ingredients = [{"productId": str(uuid.uuid4()), "amount": 1, "unit": "gram"} for _ in range(51)]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "ingredient_limit_exceeded"


def test_non_positive_amount_is_invalid_payload(client, headers, products):
    ingredients = [{"productId": products["Rice"], "amount": 0, "unit": "cup"}]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_payload"


@pytest.mark.parametrize(
    "item, field",
    [
        ({"amount": -1, "unit": "gram"}, "ingredients.0.amount"),
        ({"amount": 1}, "ingredients.0.unit"),
        ({"productId": "not-a-uuid", "amount": 1, "unit": "gram"}, "ingredients.0.productId"),
    ],
)
def test_malformed_ingredient_message_names_failing_field(client, headers, products, item, field):
    ingredient = dict({"productId": products["Rice"]}, **item)
    response = client.post("/api/recipes", json=_payload([ingredient]), headers=headers)

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "invalid_payload"
    assert error["message"].startswith(f"{field}:")


def test_free_text_of_wrong_type_names_ingredients(client, headers):
    response = client.post("/api/recipes", json=_payload({"text": "Rice"}), headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "ingredients: Input should be a valid string"


@pytest.mark.parametrize("amount", [0.0004, 1.2345, 1e8, "5"])
def test_amount_outside_storable_range_is_invalid_payload(client, headers, products, db_session, amount):
    ingredients = [{"productId": products["Rice"], "amount": amount, "unit": "cup"}]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "invalid_payload"
    assert error["message"].startswith("ingredients.0.amount:")
    assert db_session.query(Recipe).count() == 0


def test_amount_with_three_decimals_is_stored(client, headers, products):
    ingredients = [{"productId": products["Rice"], "amount": 0.125, "unit": "cup"}]
    response = client.post("/api/recipes", json=_payload(ingredients), headers=headers)
    assert response.status_code == 201, response.text
    assert response.json()["ingredients"][0]["amount"] == 0.125


def test_empty_ingredient_list_is_invalid_payload(client, headers):
    response = client.post("/api/recipes", json=_payload([]), headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_payload"


def test_update_replaces_ingredient_set(client, headers, products, db_session):
    created = client.post(
        "/api/recipes",
        json=_payload([
            {"productId": products["Rice"], "amount": 1, "unit": "cup"},
            {"productId": products["Chicken breast"], "amount": 200, "unit": "gram"},
        ]),
        headers=headers,
    ).json()

    # Same product kept, one dropped, one added
    response = client.put(
        f"/api/recipes/{created['id']}",
        json=_payload([
            {"productId": products["Rice"], "amount": 2, "unit": "cup"},
            {"productId": products["Olive oil"], "amount": 1, "unit": "tablespoon"},
        ]),
        headers=headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert [(i["product"]["name"], i["amount"]) for i in data["ingredients"]] == [("Rice", 2), ("Olive oil", 1)]

    db_session.expire_all()
    assert db_session.query(RecipeIngredient).filter_by(recipe_id=created["id"]).count() == 2


def test_update_switches_to_free_text(client, headers, products, db_session):
    created = client.post(
        "/api/recipes",
        json=_payload([{"productId": products["Rice"], "amount": 1, "unit": "cup"}]),
        headers=headers,
    ).json()

    response = client.put(
        f"/api/recipes/{created['id']}", json=_payload("Rice 1 cup"), headers=headers
    )
    assert response.status_code == 200
    assert response.json()["ingredients"] == "Rice 1 cup"

    db_session.expire_all()
    assert db_session.query(RecipeIngredient).count() == 0


def test_delete_cascades_to_ingredients(client, headers, products, db_session):
    created = client.post(
        "/api/recipes",
        json=_payload([{"productId": products["Rice"], "amount": 1, "unit": "cup"}]),
        headers=headers,
    ).json()

    assert client.delete(f"/api/recipes/{created['id']}", headers=headers).status_code == 204
    db_session.expire_all()
    assert db_session.query(RecipeIngredient).count() == 0


def test_failed_ingredient_insert_discards_recipe_row(db_session, products, monkeypatch):
    """The recipe row never outlives a failed ingredient insert."""
    command = RecipeCreateCommand.model_validate(
        _payload([{"productId": products["Rice"], "amount": 1, "unit": "cup"}])
    )

    def broken_rows(recipe_id, ingredients):
        # amount <= 0 violates ck_recipe_ingredients_amount_positive
        return [
            RecipeIngredient(recipe_id=recipe_id, product_id=str(item.product_id), position=0, amount=-1, unit=item.unit)
            for item in ingredients
        ]

    monkeypatch.setattr(recipe_service, "_build_ingredient_rows", broken_rows)

    with pytest.raises(recipe_service.RecipeServiceError) as exc:
        recipe_service.create_recipe(db_session, USER_ID, command)

    assert exc.value.code == "invalid_ingredient_amount"
    assert isinstance(exc.value.cause, IntegrityError)
    assert db_session.query(Recipe).count() == 0
    assert db_session.query(RecipeIngredient).count() == 0
