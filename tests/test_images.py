import io
import os

import httpx
import pytest
from PIL import Image
from fastapi import status

import storage
from config import settings
from conftest import signup
from image_engine import GenerationResult, ImageGenerationError


def generate(client, prompt="a protein smoothie", platform="instagram", **extra):
    return client.post("/api/generate", json={"prompt": prompt, "platform": platform, **extra})


# --- generation ---

def test_generate_in_mock_mode(onboarded_client):
    resp = generate(onboarded_client)
    assert resp.status_code == status.HTTP_200_OK
    data = resp.json()
    assert data["prompt"] == "a protein smoothie"
    assert data["platform"] == "instagram"
    assert data["dimensions"] == "1080x1080"
    assert data["style"] == "minimalist"
    assert data["is_favorite"] is False
    assert data["image_url"].startswith("https://picsum.photos/1080/1080")
    assert "in fitness niche" in data["enhanced_prompt"]
    assert "optimized for instagram" in data["enhanced_prompt"]

    me = onboarded_client.get("/api/auth/user").json()
    assert me["credits_remaining"] == settings.DEFAULT_CREDITS - 1


def test_generate_explicit_style_wins(onboarded_client):
    resp = generate(onboarded_client, platform="linkedin", style="photorealistic")
    assert resp.status_code == 200
    assert resp.json()["style"] == "photorealistic"
    assert resp.json()["dimensions"] == "1200x627"
    # linkedin is not one of the user's platforms
    assert "optimized for" not in resp.json()["enhanced_prompt"]


def test_generate_runs_out_of_credits(onboarded_client):
    for _ in range(settings.DEFAULT_CREDITS):
        assert generate(onboarded_client).status_code == 200

    resp = generate(onboarded_client)
    assert resp.status_code == status.HTTP_402_PAYMENT_REQUIRED
    assert onboarded_client.get("/api/auth/user").json()["credits_remaining"] == 0
    assert len(onboarded_client.get("/api/images").json()) == settings.DEFAULT_CREDITS


def test_generate_provider_failure_keeps_credit(onboarded_client, mocker):
    mocker.patch(
        "image_router.request_image",
        side_effect=ImageGenerationError("Failed to generate image: content policy"),
    )
    resp = generate(onboarded_client)
    assert resp.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert resp.json()["detail"] == "Failed to generate image: content policy"

    me = onboarded_client.get("/api/auth/user").json()
    assert me["credits_remaining"] == settings.DEFAULT_CREDITS
    assert onboarded_client.get("/api/images").json() == []


def test_generate_unexpected_failure(onboarded_client, mocker):
    mocker.patch("image_router.request_image", side_effect=RuntimeError("boom"))
    resp = generate(onboarded_client)
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to generate image"


def test_generate_rejects_unknown_platform(onboarded_client):
    resp = generate(onboarded_client, platform="myspace")
    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_generate_rejects_empty_prompt(onboarded_client):
    resp = generate(onboarded_client, prompt="")
    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_generate_requires_auth(client):
    assert generate(client).status_code == status.HTTP_401_UNAUTHORIZED


def test_generate_uses_refiner_when_enabled(onboarded_client, mocker, monkeypatch):
    monkeypatch.setattr(settings, "PROMPT_REFINER_ENABLED", True)
    refine = mocker.patch("image_router.refine_prompt", return_value="a polished prompt")

    resp = generate(onboarded_client)
    assert resp.status_code == 200
    assert resp.json()["enhanced_prompt"] == "a polished prompt"
    refine.assert_awaited_once()


# --- local mirroring ---

def test_generate_mirrors_into_local_storage(onboarded_client, local_store):
    resp = generate(onboarded_client, platform="twitter")
    assert resp.status_code == 200
    image_url = resp.json()["image_url"]
    assert image_url.startswith("http://testserver/api/image/")

    key = image_url.rsplit("/", 1)[-1]
    served = onboarded_client.get(f"/api/image/{key}")
    assert served.status_code == 200
    assert served.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(served.content)).size == (1200, 675)

    onboarded_client.delete(f"/api/images/{resp.json()['id']}")
    assert not os.path.exists(local_store.get_path(key))


def test_generate_removes_copy_when_credit_is_gone(onboarded_client, local_store, mocker):
    # the last credit went to a concurrent request
    mocker.patch("image_router.crud.decrement_credits", return_value=False)

    resp = generate(onboarded_client)
    assert resp.status_code == status.HTTP_402_PAYMENT_REQUIRED
    assert os.listdir(local_store.dir) == []
    assert onboarded_client.get("/api/images").json() == []


def test_delete_image_keeps_file_when_row_delete_fails(onboarded_client, local_store, mocker):
    image = generate(onboarded_client).json()
    key = image["image_url"].rsplit("/", 1)[-1]

    mocker.patch("image_router.crud.delete_image", side_effect=RuntimeError("database unavailable"))
    with pytest.raises(RuntimeError):
        onboarded_client.delete(f"/api/images/{image['id']}")

    assert os.path.exists(local_store.get_path(key))


def test_generate_keeps_provider_url_when_copy_fails(onboarded_client, mocker, monkeypatch, tmp_path):
    monkeypatch.setattr(storage, "_storage_instance", storage.LocalStorage(directory=str(tmp_path)))
    mocker.patch(
        "image_router.request_image",
        return_value=GenerationResult(url="https://provider.example/generated.png"),
    )
    mocker.patch("image_router.fetch_image", side_effect=httpx.ConnectError("unreachable"))

    resp = generate(onboarded_client)
    assert resp.status_code == 200
    assert resp.json()["image_url"] == "https://provider.example/generated.png"


def test_serve_image_unknown_key(client):
    assert client.get("/api/image/nope").status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/api/image/bad.key").status_code == status.HTTP_404_NOT_FOUND


# --- history / favorites ---

def test_list_images_newest_first(onboarded_client):
    for prompt in ("first", "second", "third"):
        generate(onboarded_client, prompt=prompt)

    images = onboarded_client.get("/api/images").json()
    assert [i["prompt"] for i in images] == ["third", "second", "first"]

    page = onboarded_client.get("/api/images", params={"limit": 1, "offset": 1}).json()
    assert [i["prompt"] for i in page] == ["second"]


def test_list_images_filters(onboarded_client):
    first = generate(onboarded_client, prompt="square", platform="instagram").json()
    generate(onboarded_client, prompt="wide", platform="twitter")
    onboarded_client.patch(f"/api/images/{first['id']}/favorite", json={"is_favorite": True})

    favorites = onboarded_client.get("/api/images", params={"favorites": True}).json()
    assert [i["prompt"] for i in favorites] == ["square"]

    twitter = onboarded_client.get("/api/images", params={"platform": "twitter"}).json()
    assert [i["prompt"] for i in twitter] == ["wide"]


def test_favorite_toggle(onboarded_client):
    image = generate(onboarded_client).json()

    resp = onboarded_client.patch(f"/api/images/{image['id']}/favorite", json={"is_favorite": True})
    assert resp.status_code == 200
    assert resp.json()["is_favorite"] is True

    resp = onboarded_client.patch(f"/api/images/{image['id']}/favorite", json={"is_favorite": False})
    assert resp.json()["is_favorite"] is False


def test_get_and_delete_image(onboarded_client):
    image = generate(onboarded_client).json()

    assert onboarded_client.get(f"/api/images/{image['id']}").json()["id"] == image["id"]

    resp = onboarded_client.delete(f"/api/images/{image['id']}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Image deleted successfully"
    assert onboarded_client.get(f"/api/images/{image['id']}").status_code == status.HTTP_404_NOT_FOUND
    # a deletion never refunds the credit
    assert onboarded_client.get("/api/auth/user").json()["credits_remaining"] == settings.DEFAULT_CREDITS - 1


def test_unknown_image_is_404(onboarded_client):
    resp = onboarded_client.patch("/api/images/does-not-exist/favorite", json={"is_favorite": True})
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert onboarded_client.delete("/api/images/does-not-exist").status_code == 404


def test_other_users_image_is_forbidden(onboarded_client):
    image = generate(onboarded_client).json()

    onboarded_client.cookies.clear()
    assert signup(onboarded_client, email="mallory@example.com").status_code == 201

    assert onboarded_client.get(f"/api/images/{image['id']}").status_code == status.HTTP_403_FORBIDDEN
    resp = onboarded_client.patch(f"/api/images/{image['id']}/favorite", json={"is_favorite": True})
    assert resp.status_code == status.HTTP_403_FORBIDDEN
    assert onboarded_client.delete(f"/api/images/{image['id']}").status_code == status.HTTP_403_FORBIDDEN
    assert onboarded_client.get("/api/images").json() == []
