"""
Stat block API tests — CRUD, short ability-score names and portrait handling.
"""

import base64

import pytest
import requests

from app.services import statblock_service
from tests.helpers import make_png


def _create(client, name="Goblin Boss", **extra):
    body = {
        "name": name,
        "type": "humanoid",
        "cr": "1",
        "str": 14,
        "dex": 16,
        "spellSaveDC": 12,
        "attacks": [{"name": "Scimitar", "toHitModifier": 4, "damage": "1d6+2 slashing"}],
        "tags": ["monster", " goblin", "monster"],
        **extra,
    }
    resp = client.post("/api/statblocks", json=body)
    assert resp.status_code == 201
    return resp.json()


class _FakeResponse:
    def __init__(self, content, content_type="image/png", status=200):
        self.content = content
        self.headers = {"Content-Type": content_type}
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class TestStatBlockCrud:
    def test_create_uses_short_wire_names(self, client):
        sb = _create(client)
        assert sb["id"]
        assert sb["type"] == "humanoid"
        assert (sb["str"], sb["dex"], sb["con"]) == (14, 16, 10)
        assert sb["spellSaveDC"] == 12
        assert sb["attacks"][0]["toHitModifier"] == 4
        assert sb["tags"] == ["monster", "goblin"]
        assert sb["hasImage"] is False

    def test_get_and_partial_update(self, client):
        sb = _create(client)
        resp = client.put(f"/api/statblocks/{sb['id']}", json={"hp": "21 (6d8)", "wis": 8})
        assert resp.status_code == 200
        updated = resp.json()
        assert updated["hp"] == "21 (6d8)"
        assert updated["wis"] == 8
        assert updated["str"] == 14
        assert updated["attacks"][0]["name"] == "Scimitar"
        assert client.get(f"/api/statblocks/{sb['id']}").json()["hp"] == "21 (6d8)"

    def test_blank_name_rejected(self, client):
        assert client.post("/api/statblocks", json={"name": ""}).status_code == 422

    def test_missing_statblock(self, client):
        assert client.get("/api/statblocks/nope").status_code == 404
        assert client.put("/api/statblocks/nope", json={"cr": "2"}).status_code == 404
        assert client.delete("/api/statblocks/nope").status_code == 404

    def test_search_tags_and_tag_list(self, client):
        _create(client, "Goblin Boss")
        _create(client, "Lich", tags=["undead"])
        names = [sb["name"] for sb in client.get("/api/statblocks", params={"search": "lic"}).json()]
        assert names == ["Lich"]
        tagged = client.get("/api/statblocks", params={"tags": "undead"}).json()
        assert [sb["name"] for sb in tagged] == ["Lich"]
        assert client.get("/api/statblocks/tags").json() == ["goblin", "monster", "undead"]

    def test_delete_and_bulk_delete(self, client):
        a = _create(client, "A")
        b = _create(client, "B")
        c = _create(client, "C")
        assert client.delete(f"/api/statblocks/{a['id']}").status_code == 204
        resp = client.request("DELETE", "/api/statblocks/bulk", json={"ids": [b["id"], c["id"]]})
        assert resp.status_code == 204
        assert client.get("/api/statblocks").json() == []


class TestStatBlockImage:
    @pytest.fixture
    def statblock(self, client):
        return _create(client)

    def _upload(self, client, statblock_id, png):
        payload = base64.b64encode(png).decode()
        return client.post(
            f"/api/statblocks/{statblock_id}/image/base64",
            json={"data": f"data:image/png;base64,{payload}"},
        )

    def test_base64_upload_and_fetch(self, client, statblock, png_bytes):
        assert self._upload(client, statblock["id"], png_bytes).status_code == 204
        resp = client.get(f"/api/statblocks/{statblock['id']}/image")
        assert resp.status_code == 200
        assert resp.content == png_bytes
        assert resp.headers["content-type"] == "image/png"
        assert client.get(f"/api/statblocks/{statblock['id']}").json()["hasImage"] is True

    def test_multipart_upload(self, client, statblock, png_bytes):
        resp = client.post(
            f"/api/statblocks/{statblock['id']}/image",
            files={"file": ("portrait.png", png_bytes, "image/png")},
        )
        assert resp.status_code == 204
        assert client.get(f"/api/statblocks/{statblock['id']}/image").content == png_bytes

    def test_upload_to_missing_statblock(self, client, png_bytes):
        assert self._upload(client, "nope", png_bytes).status_code == 404

    def test_invalid_base64(self, client, statblock):
        resp = client.post(f"/api/statblocks/{statblock['id']}/image/base64", json={"data": "not base64!"})
        assert resp.status_code == 400

    def test_delete_image(self, client, statblock, png_bytes):
        self._upload(client, statblock["id"], png_bytes)
        assert client.delete(f"/api/statblocks/{statblock['id']}/image").status_code == 204
        assert client.get(f"/api/statblocks/{statblock['id']}/image").status_code == 404
        assert client.get(f"/api/statblocks/{statblock['id']}").json()["hasImage"] is False

    def test_image_survives_statblock_update(self, client, statblock, png_bytes):
        self._upload(client, statblock["id"], png_bytes)
        client.put(f"/api/statblocks/{statblock['id']}", json={"notes": "Leads the ambush"})
        assert client.get(f"/api/statblocks/{statblock['id']}").json()["hasImage"] is True
        assert client.get(f"/api/statblocks/{statblock['id']}/image").content == png_bytes

    def test_image_settings_are_clamped(self, client, statblock, png_bytes):
        url = f"/api/statblocks/{statblock['id']}/image/settings"
        assert client.get(url).status_code == 404
        self._upload(client, statblock["id"], png_bytes)
        assert client.get(url).json() == {"offset": 0, "scale": 1.0}

        assert client.put(url, json={"offset": -3, "scale": 10}).json() == {"offset": 0, "scale": 4.0}
        assert client.put(url, json={"offset": 12.7, "scale": 0.01}).json() == {"offset": 12, "scale": 0.1}
        assert client.put(url, json={"scale": 1.5}).json() == {"offset": 12, "scale": 1.5}
        assert client.get(url).json() == {"offset": 12, "scale": 1.5}

    def test_new_upload_resets_settings(self, client, statblock, png_bytes):
        url = f"/api/statblocks/{statblock['id']}/image/settings"
        self._upload(client, statblock["id"], png_bytes)
        client.put(url, json={"offset": 5, "scale": 2})
        self._upload(client, statblock["id"], png_bytes)
        assert client.get(url).json() == {"offset": 0, "scale": 1.0}


class TestStatBlockImageFromUrl:
    @pytest.fixture
    def statblock(self, client):
        return _create(client)

    def test_fetches_and_stores_image(self, client, statblock, monkeypatch):
        png = make_png(color=(0, 128, 0))
        calls = []

        def fake_get(url, **kwargs):
            calls.append(url)
            return _FakeResponse(png, "image/png; charset=binary")

        monkeypatch.setattr(statblock_service.requests, "get", fake_get)
        resp = client.post(
            f"/api/statblocks/{statblock['id']}/image/url",
            json={"url": "https://example.org/art/goblin-boss.png"},
        )
        assert resp.status_code == 204
        assert calls == ["https://example.org/art/goblin-boss.png"]

        image = client.get(f"/api/statblocks/{statblock['id']}/image")
        assert image.content == png
        assert image.headers["content-type"] == "image/png"
        assert "goblin-boss.png" in image.headers["content-disposition"]

    def test_connection_error_is_a_bad_request(self, client, statblock, monkeypatch):
        def fake_get(url, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(statblock_service.requests, "get", fake_get)
        resp = client.post(f"/api/statblocks/{statblock['id']}/image/url", json={"url": "https://example.org/x.png"})
        assert resp.status_code == 400
        assert "Failed to fetch URL" in resp.json()["detail"]

    def test_http_error_is_a_bad_request(self, client, statblock, monkeypatch):
        monkeypatch.setattr(statblock_service.requests, "get", lambda url, **kw: _FakeResponse(b"", status=404))
        resp = client.post(f"/api/statblocks/{statblock['id']}/image/url", json={"url": "https://example.org/x.png"})
        assert resp.status_code == 400

    def test_missing_statblock_skips_download(self, client, monkeypatch):
        def fake_get(url, **kwargs):
            raise AssertionError("should not download")

        monkeypatch.setattr(statblock_service.requests, "get", fake_get)
        resp = client.post("/api/statblocks/nope/image/url", json={"url": "https://example.org/x.png"})
        assert resp.status_code == 404
