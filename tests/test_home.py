from conftest import PNG_BYTES, auth


def banner_files(n, ext="png"):
    return [("banners", (f"banner{i}.{ext}", PNG_BYTES, "image/png")) for i in range(n)]


def test_public_home_placeholder_and_admin_404(client, admin_token):
    r = client.get("/api/home")
    assert r.status_code == 200
    assert r.json()["data"] == {"thumbnail": {"path": "", "url": ""}, "premiumBanners": [], "searchableUrl": ""}

    r = client.get("/api/home/admin", headers=auth(admin_token))
    assert r.status_code == 404
    assert r.json()["message"] == "Home content not found"


def test_thumbnail_upload_and_replace(client, admin_token):
    r = client.post("/api/home/thumbnail", headers=auth(admin_token))
    assert r.status_code == 400
    assert r.json()["message"] == "Thumbnail image is required"

    r = client.post(
        "/api/home/thumbnail",
        data={"url": "https://example.com/promo", "searchableUrl": "https://example.com/search"},
        files={"thumbnail": ("thumb.JPG", PNG_BYTES, "image/jpeg")},
        headers=auth(admin_token),
    )
    assert r.status_code == 201
    first = r.json()["data"]
    assert first["thumbnail"]["path"].startswith("/uploads/home/thumbnail/")
    assert first["thumbnail"]["url"] == "https://example.com/promo"
    assert first["searchableUrl"] == "https://example.com/search"

    # Файл реально раздаётся статикой
    assert client.get(first["thumbnail"]["path"]).content == PNG_BYTES

    r = client.post(
        "/api/home/thumbnail",
        files={"thumbnail": ("thumb2.png", PNG_BYTES, "image/png")},
        headers=auth(admin_token),
    )
    second = r.json()["data"]
    assert second["thumbnail"]["path"] != first["thumbnail"]["path"]
    assert second["searchableUrl"] == "https://example.com/search"

    admin_view = client.get("/api/home/admin", headers=auth(admin_token)).json()["data"]
    assert admin_view["id"]
    assert admin_view["thumbnail"] == second["thumbnail"]


def test_premium_banners_append(client, admin_token):
    r = client.post(
        "/api/home/premium-banner",
        data={"urls": ["https://a", "https://b"]},
        files=banner_files(2),
        headers=auth(admin_token),
    )
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["uploaded"] == 2
    assert data["totalCount"] == 2
    assert [b["url"] for b in data["premiumBanners"]] == ["https://a", "https://b"]

    r = client.post("/api/home/premium-banner", files=banner_files(1), headers=auth(admin_token))
    data = r.json()["data"]
    assert data["uploaded"] == 1
    assert data["totalCount"] == 3
    assert data["premiumBanners"][2]["url"] == ""

    public = client.get("/api/home").json()["data"]
    assert len(public["premiumBanners"]) == 3


def test_premium_banner_limits(client, admin_token):
    r = client.post("/api/home/premium-banner", headers=auth(admin_token))
    assert r.status_code == 400
    assert r.json()["message"] == "Premium banner images are required"

    r = client.post("/api/home/premium-banner", files=banner_files(6), headers=auth(admin_token))
    assert r.status_code == 400

    r = client.post("/api/home/premium-banner", files=banner_files(2, ext="exe"), headers=auth(admin_token))
    assert r.status_code == 400
    assert r.json()["message"] == "Only image files are allowed!"

    assert client.get("/api/home").json()["data"]["premiumBanners"] == []


def test_home_writes_require_admin(client, user_token):
    r = client.post(
        "/api/home/thumbnail",
        files={"thumbnail": ("t.png", PNG_BYTES, "image/png")},
        headers=auth(user_token),
    )
    assert r.status_code == 403
