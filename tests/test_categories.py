from pathlib import Path

from backend.mediahub.config import get_settings
from conftest import PNG_BYTES, auth, verify


def create_main(client, token, name="Movies"):
    r = client.post("/api/categories/main", json={"name": name}, headers=auth(token))
    assert r.status_code == 201, r.text
    return r.json()["data"]


def create_sub(client, token, parent_id, name="Action", premium=False, image=True, **extra):
    form = {
        "name": name,
        "parentCategoryId": parent_id,
        "title": f"{name} title",
        "telegramUrl": f"https://t.me/{name.lower()}",
        "isPremium": "true" if premium else "false",
    }
    form.update(extra)
    files = {"image": ("poster.png", PNG_BYTES, "image/png")} if image else None
    return client.post("/api/categories/sub", data=form, files=files, headers=auth(token))


def uploaded_files():
    root = Path(get_settings().UPLOAD_DIR) / "categories"
    return list(root.glob("*")) if root.exists() else []


def test_create_main_category_listed_once(client, admin_token, user_token):
    created = create_main(client, admin_token)
    assert created["isMainCategory"] is True

    r = client.get("/api/categories/main", headers=auth(user_token))
    assert r.status_code == 200
    assert [c["categoryId"] for c in r.json()["data"]].count(created["categoryId"]) == 1

    r = client.get("/api/categories/users/main")
    assert r.json()["data"] == [{"categoryId": created["categoryId"], "name": "Movies"}]


def test_create_main_requires_name_and_admin(client, admin_token, user_token):
    r = client.post("/api/categories/main", json={}, headers=auth(admin_token))
    assert r.status_code == 400

    r = client.post("/api/categories/main", json={"name": "X"}, headers=auth(user_token))
    assert r.status_code == 403


def test_subcategory_without_image_persists_nothing(client, admin_token):
    parent = create_main(client, admin_token)
    before = len(uploaded_files())

    r = create_sub(client, admin_token, parent["categoryId"], image=False)
    assert r.status_code == 400
    assert r.json()["message"] == "Image is required"

    r = client.get(f"/api/categories/sub/{parent['categoryId']}", headers=auth(admin_token))
    assert r.json()["data"] == []
    assert len(uploaded_files()) == before


def test_subcategory_validation_order(client, admin_token):
    parent = create_main(client, admin_token)

    r = create_sub(client, admin_token, parent["categoryId"], title="")
    assert r.status_code == 400

    r = create_sub(client, admin_token, "does-not-exist")
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid parent category or not a main category"

    sub = create_sub(client, admin_token, parent["categoryId"]).json()["data"]
    r = create_sub(client, admin_token, sub["categoryId"], name="Nested")
    assert r.json()["message"] == "Invalid parent category or not a main category"


def test_subcategory_rejects_non_image(client, admin_token):
    parent = create_main(client, admin_token)
    r = client.post(
        "/api/categories/sub",
        data={"name": "Doc", "parentCategoryId": parent["categoryId"], "title": "t", "telegramUrl": "u"},
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=auth(admin_token),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Only image files are allowed!"


def test_movies_action_premium_visibility(client, admin_token, user_token):
    movies = create_main(client, admin_token, "Movies")
    action = create_sub(client, admin_token, movies["categoryId"], "Action", premium=True).json()["data"]
    comedy = create_sub(client, admin_token, movies["categoryId"], "Comedy", premium=False).json()["data"]
    assert action["isPremium"] is True
    assert action["imageUrl"].startswith("/uploads/categories/")

    # Без подписки — только бесплатные
    r = client.get(f"/api/categories/sub/{movies['categoryId']}", headers=auth(user_token))
    assert [c["name"] for c in r.json()["data"]] == ["Comedy"]

    r = client.get(f"/api/categories/users/sub/{movies['categoryId']}")
    assert [c["name"] for c in r.json()["data"]] == ["Comedy"]

    r = client.get(f"/api/categories/{action['categoryId']}", headers=auth(user_token))
    assert r.status_code == 403
    assert r.json()["message"] == "Premium content access required"

    detail = client.get(f"/api/categories/{movies['categoryId']}", headers=auth(user_token)).json()["data"]
    assert [s["categoryId"] for s in detail["subcategories"]] == [comedy["categoryId"]]

    # После оплаты — всё
    assert verify(client, user_token).status_code == 200
    r = client.get(f"/api/categories/sub/{movies['categoryId']}", headers=auth(user_token))
    assert [c["name"] for c in r.json()["data"]] == ["Action", "Comedy"]

    r = client.get(f"/api/categories/users/sub/{movies['categoryId']}", headers=auth(user_token))
    assert [c["name"] for c in r.json()["data"]] == ["Action", "Comedy"]

    r = client.get(f"/api/categories/{action['categoryId']}", headers=auth(user_token))
    assert r.status_code == 200
    assert r.json()["data"]["title"] == "Action title"

    # Админ всегда премиум
    r = client.get(f"/api/categories/{action['categoryId']}", headers=auth(admin_token))
    assert r.status_code == 200


def test_get_unknown_category(client, user_token):
    r = client.get("/api/categories/nope", headers=auth(user_token))
    assert r.status_code == 404
    assert r.json()["message"] == "Category not found"


def test_update_respects_target_kind(client, admin_token):
    movies = create_main(client, admin_token, "Movies")
    action = create_sub(client, admin_token, movies["categoryId"], "Action").json()["data"]

    r = client.put(
        f"/api/categories/{movies['categoryId']}",
        data={"name": "Films", "title": "ignored"},
        headers=auth(admin_token),
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["name"] == "Films"
    assert data["title"] is None
    assert [s["name"] for s in data["subcategories"]] == ["Action"]

    r = client.put(
        f"/api/categories/{action['categoryId']}",
        data={"title": "New title", "isPremium": "true"},
        files={"image": ("new.webp", PNG_BYTES, "image/webp")},
        headers=auth(admin_token),
    )
    data = r.json()["data"]
    assert data["name"] == "Action"
    assert data["title"] == "New title"
    assert data["isPremium"] is True
    assert data["imageUrl"] != action["imageUrl"]

    r = client.put("/api/categories/missing", data={"name": "x"}, headers=auth(admin_token))
    assert r.status_code == 404


def test_post_aliases(client, admin_token):
    movies = create_main(client, admin_token, "Movies")
    action = create_sub(client, admin_token, movies["categoryId"], "Action").json()["data"]

    r = client.post(f"/api/categories/update-main/{action['categoryId']}", data={"name": "x"}, headers=auth(admin_token))
    assert r.status_code == 404

    r = client.post(f"/api/categories/update-sub/{action['categoryId']}", data={"name": "Thriller"}, headers=auth(admin_token))
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Thriller"

    r = client.post(f"/api/categories/update/{movies['categoryId']}", data={"name": "Films"}, headers=auth(admin_token))
    assert r.json()["data"]["name"] == "Films"

    r = client.post(f"/api/categories/delete-main/{action['categoryId']}", headers=auth(admin_token))
    assert r.status_code == 404

    r = client.post(f"/api/categories/delete-sub/{action['categoryId']}", headers=auth(admin_token))
    assert r.status_code == 200

    r = client.post(f"/api/categories/delete/{movies['categoryId']}", headers=auth(admin_token))
    assert r.status_code == 200
    assert client.get("/api/categories/users/main").json()["data"] == []


def test_delete_main_cascades(client, admin_token):
    movies = create_main(client, admin_token, "Movies")
    series = create_main(client, admin_token, "Series")
    for name in ("Action", "Drama"):
        create_sub(client, admin_token, movies["categoryId"], name)
    kept = create_sub(client, admin_token, series["categoryId"], "Crime").json()["data"]

    r = client.delete(f"/api/categories/{movies['categoryId']}", headers=auth(admin_token))
    assert r.status_code == 200
    assert r.json()["message"] == "Category deleted successfully"

    r = client.get(f"/api/categories/sub/{movies['categoryId']}", headers=auth(admin_token))
    assert r.json()["data"] == []
    r = client.get(f"/api/categories/sub/{series['categoryId']}", headers=auth(admin_token))
    assert [c["categoryId"] for c in r.json()["data"]] == [kept["categoryId"]]

    r = client.delete(f"/api/categories/{movies['categoryId']}", headers=auth(admin_token))
    assert r.status_code == 404


def test_flipping_to_premium_hides_from_free_callers(client, admin_token, user_token):
    movies = create_main(client, admin_token, "Movies")
    action = create_sub(client, admin_token, movies["categoryId"], "Action", premium=False).json()["data"]

    r = client.get(f"/api/categories/sub/{movies['categoryId']}", headers=auth(user_token))
    assert [c["categoryId"] for c in r.json()["data"]] == [action["categoryId"]]

    r = client.put(
        f"/api/categories/{action['categoryId']}",
        data={"isPremium": "true"},
        headers=auth(admin_token),
    )
    assert r.status_code == 200
    assert r.json()["data"]["isPremium"] is True

    r = client.get(f"/api/categories/sub/{movies['categoryId']}", headers=auth(user_token))
    assert r.json()["data"] == []
    r = client.get(f"/api/categories/users/sub/{movies['categoryId']}")
    assert r.json()["data"] == []
    r = client.get(f"/api/categories/{action['categoryId']}", headers=auth(user_token))
    assert r.status_code == 403
