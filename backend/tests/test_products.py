from sweetshop import products

from conftest import make_category, make_product, order_body


def test_create_product(client, admin_headers):
    category = make_category(client, admin_headers)
    resp = client.post("/v1/admin/products", json={
        "name": " Kaju Katli ",
        "price": 2999,
        "stock_quantity": 10,
        "categoryId": category["id"],
        "description": "Cashew fudge",
        "image_urls": ["https://cdn.example.com/kaju.jpg"],
    }, headers=admin_headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Product added successfully."
    data = body["data"]
    assert data["name"] == "Kaju Katli"
    assert data["price"] == 2999
    assert data["categoryId"] == category["id"]
    assert data["category"] == {"id": category["id"], "name": "Sweets"}
    assert data["image_urls"] == ["https://cdn.example.com/kaju.jpg"]
    assert data["isInStock"] is True


def test_create_product_lists_missing_fields(client, admin_headers):
    resp = client.post("/v1/admin/products", json={"name": "Peda"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Missing required fields: price, stock_quantity, categoryId."


def test_create_product_field_rules(client, admin_headers):
    category = make_category(client, admin_headers)
    base = {"name": "Peda", "price": 100, "stock_quantity": 1, "categoryId": category["id"]}
    cases = [
        ({"price": -5}, 400, "Price must be a positive number."),
        ({"price": "100"}, 400, "Price must be a positive number."),
        ({"price": 99.5}, 400, "Price must be a whole number of minor currency units."),
        ({"stock_quantity": -1}, 400, "Stock quantity must be 0 or greater."),
        ({"image_urls": "https://cdn.example.com/a.jpg"}, 400, "Image URLs must be an array."),
        ({"image_urls": ["https://cdn.example.com/a.jpg"] * 6}, 400, "Maximum 5 images allowed per product."),
        ({"image_urls": ["not a url"]}, 400, "All image URLs must be valid URLs."),
        ({"categoryId": 9999}, 404, "Category not found."),
    ]
    for override, status_code, message in cases:
        payload = dict(base, **override)
        resp = client.post("/v1/admin/products", json=payload, headers=admin_headers)
        assert resp.status_code == status_code, override
        assert resp.json()["message"] == message


def test_integral_float_price_is_accepted(client, admin_headers):
    category = make_category(client, admin_headers)
    product = make_product(client, admin_headers, category["id"], price=250.0)
    assert product["price"] == 250


def test_product_names_are_unique_ignoring_case(client, admin_headers):
    category = make_category(client, admin_headers)
    make_product(client, admin_headers, category["id"], name="Rasgulla")
    resp = client.post("/v1/admin/products", json={
        "name": "rasgulla", "price": 10, "stock_quantity": 1, "categoryId": category["id"],
    }, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "Product with this name already exists."


def test_update_product_changes_only_given_fields(client, admin_headers):
    category = make_category(client, admin_headers)
    product = make_product(client, admin_headers, category["id"], description="Classic")

    resp = client.put(f"/v1/admin/products/{product['id']}", json={"stock_quantity": 0}, headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["stock_quantity"] == 0
    assert data["isInStock"] is False
    assert data["name"] == product["name"]
    assert data["price"] == product["price"]
    assert data["description"] == "Classic"

    resp = client.put("/v1/admin/products/abc", json={"price": 5}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Valid product ID is required."

    resp = client.put("/v1/admin/products/9999", json={"price": 5}, headers=admin_headers)
    assert resp.status_code == 404


def test_list_products_filters_and_paginates(client, admin_headers):
    sweets = make_category(client, admin_headers, "Sweets")
    snacks = make_category(client, admin_headers, "Snacks")
    make_product(client, admin_headers, sweets["id"], name="Kaju Katli", price=2999, stock=10)
    make_product(client, admin_headers, sweets["id"], name="Motichoor Ladoo", price=299, stock=0)
    make_product(client, admin_headers, snacks["id"], name="Aloo Bhujia", price=150, stock=5,
                 description="Spicy ladoo companion")

    data = client.get("/v1/user/products").json()["data"]
    assert len(data["products"]) == 3
    assert data["pagination"] == {
        "currentPage": 1,
        "totalPages": 1,
        "totalProducts": 3,
        "limit": 12,
        "hasNextPage": False,
        "hasPrevPage": False,
    }

    def names(**params):
        resp = client.get("/v1/user/products", params=params)
        assert resp.status_code == 200
        return sorted(p["name"] for p in resp.json()["data"]["products"])

    assert names(categoryId=sweets["id"]) == ["Kaju Katli", "Motichoor Ladoo"]
    assert names(search="LADOO") == ["Aloo Bhujia", "Motichoor Ladoo"]
    assert names(minPrice=200, maxPrice=3000) == ["Kaju Katli", "Motichoor Ladoo"]
    assert names(inStock="true") == ["Aloo Bhujia", "Kaju Katli"]
    # unparseable numeric filters are ignored
    assert len(names(minPrice="cheap")) == 3

    page = client.get("/v1/user/products", params={"page": 2, "limit": 2}).json()["data"]
    assert len(page["products"]) == 1
    assert page["pagination"]["totalPages"] == 2
    assert page["pagination"]["hasPrevPage"] is True
    assert page["pagination"]["hasNextPage"] is False


def test_list_products_rejects_bad_pagination(client):
    resp = client.get("/v1/user/products", params={"page": 0})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Page must be a positive integer."

    resp = client.get("/v1/user/products", params={"limit": 51})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Limit must be between 1 and 50."


def test_get_product(client, admin_headers):
    category = make_category(client, admin_headers)
    product = make_product(client, admin_headers, category["id"])

    resp = client.get(f"/v1/user/products/{product['id']}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Product details retrieved successfully."
    assert resp.json()["data"] == product

    assert client.get("/v1/user/products/0").status_code == 400
    assert client.get("/v1/user/products/777").status_code == 404


def test_delete_product_removes_its_order_items(client, admin_headers, customer_headers):
    category = make_category(client, admin_headers)
    katli = make_product(client, admin_headers, category["id"], name="Kaju Katli", price=2999)
    ladoo = make_product(client, admin_headers, category["id"], name="Ladoo", price=299)

    order = client.post("/v1/user/orders", json=order_body([
        {"product_id": katli["id"], "quantity": 1},
        {"product_id": ladoo["id"], "quantity": 2},
    ]), headers=customer_headers).json()["data"]

    resp = client.delete(f"/v1/admin/products/{katli['id']}", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == katli["id"]
    assert data["name"] == "Kaju Katli"
    assert data["deletedOrderItemsCount"] == 1
    assert "deleted_at" in data

    remaining = client.get(f"/v1/user/orders/{order['id']}", headers=customer_headers).json()["data"]
    assert [item["product_id"] for item in remaining["order_items"]] == [ladoo["id"]]
    assert client.get(f"/v1/user/products/{katli['id']}").status_code == 404


def test_out_of_range_numbers_are_rejected(client, admin_headers):
    category = make_category(client, admin_headers)
    base = {"name": "Peda", "price": 100, "stock_quantity": 1, "categoryId": category["id"]}
    cases = [
        ({"price": 2 ** 64}, "Price must not exceed 2147483647."),
        ({"stock_quantity": 2 ** 64}, "Stock quantity must not exceed 2147483647."),
        ({"categoryId": 2 ** 64}, "Valid category ID is required."),
    ]
    for override, message in cases:
        resp = client.post("/v1/admin/products", json=dict(base, **override), headers=admin_headers)
        assert resp.status_code == 400, override
        assert resp.json()["message"] == message

    product = make_product(client, admin_headers, category["id"])
    resp = client.put(f"/v1/admin/products/{product['id']}", json={"categoryId": 2 ** 64}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Valid category ID is required."


def test_out_of_range_query_filters_match_nothing(client, admin_headers):
    category = make_category(client, admin_headers)
    make_product(client, admin_headers, category["id"])

    for params in ({"minPrice": 2 ** 40}, {"categoryId": 99999999999}):
        resp = client.get("/v1/user/products", params=params)
        assert resp.status_code == 200
        assert resp.json()["data"]["products"] == []

    resp = client.get("/v1/user/products", params={"page": 2 ** 40})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Page must be a positive integer."


def test_search_treats_wildcards_literally(client, admin_headers):
    category = make_category(client, admin_headers)
    make_product(client, admin_headers, category["id"], name="Kaju Katli")
    make_product(client, admin_headers, category["id"], name="70% Cocoa Barfi", price=450)

    def names(term):
        resp = client.get("/v1/user/products", params={"search": term})
        return [p["name"] for p in resp.json()["data"]["products"]]

    assert names("%") == ["70% Cocoa Barfi"]
    assert names("_") == []
    assert names("katli") == ["Kaju Katli"]


def test_unique_index_backs_up_the_duplicate_check(client, admin_headers, monkeypatch):
    category = make_category(client, admin_headers)
    make_product(client, admin_headers, category["id"], name="Rasgulla")

    # a concurrent insert can slip past the lookup; the index still refuses it
    monkeypatch.setattr(products, "_find_duplicate", lambda *args, **kwargs: None)
    resp = client.post("/v1/admin/products", json={
        "name": "RASGULLA", "price": 10, "stock_quantity": 1, "categoryId": category["id"],
    }, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "Product with this name already exists."
