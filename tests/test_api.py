"""
API tests — exercise the HTTP surface against a temporary SQLite database.
"""

import base64

import pytest

from tests.helpers import make_png, read_pdf


def _create_card(client, title="Fireball", **extra):
    resp = client.post("/api/cards", json={"title": title, "frontText": "8d6", "backText": "Dex save", **extra})
    assert resp.status_code == 201
    return resp.json()


def _create_mini(client, name="Goblin"):
    payload = base64.b64encode(make_png()).decode()
    resp = client.post(
        "/api/minis/base64",
        json={"name": name, "tags": ["monster"], "imageData": f"data:image/png;base64,{payload}"},
    )
    assert resp.status_code == 201
    return resp.json()


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestCards:
    def test_crud_roundtrip(self, client):
        card = _create_card(client, tags=["spell"])
        assert card["frontText"] == "8d6"
        assert card["id"]

        assert client.get(f"/api/cards/{card['id']}").json()["title"] == "Fireball"

        resp = client.put(f"/api/cards/{card['id']}", json={"backText": "Half on save"})
        assert resp.status_code == 200
        assert resp.json()["backText"] == "Half on save"
        assert resp.json()["frontText"] == "8d6"

        assert client.delete(f"/api/cards/{card['id']}").status_code == 204
        assert client.get(f"/api/cards/{card['id']}").status_code == 404

    def test_blank_title_rejected(self, client):
        assert client.post("/api/cards", json={"title": ""}).status_code == 422

    def test_search_and_tags(self, client):
        _create_card(client, "Fireball", tags=["spell"])
        _create_card(client, "Goblin", tags=["monster"])
        titles = [c["title"] for c in client.get("/api/cards", params={"search": "gob"}).json()]
        assert titles == ["Goblin"]
        tagged = client.get("/api/cards", params={"tags": "spell"}).json()
        assert [c["title"] for c in tagged] == ["Fireball"]
        assert client.get("/api/cards/tags").json() == ["monster", "spell"]

    def test_bulk_tags(self, client):
        a = _create_card(client, "A")
        b = _create_card(client, "B")
        resp = client.post("/api/cards/tags/bulk-add", json={"cardIds": [a["id"], b["id"]], "tags": ["loot"]})
        assert all("loot" in c["tags"] for c in resp.json())
        resp = client.post("/api/cards/tags/bulk-remove", json={"cardIds": [a["id"]], "tags": ["loot"]})
        assert resp.json()[0]["tags"] == []

    def test_import_csv(self, client):
        raw = b"title,front,back,tags\nBless,+1d4,,spell\nBane,-1d4,,spell\n"
        resp = client.post("/api/cards/import", files={"file": ("deck.csv", raw, "text/csv")})
        assert resp.status_code == 201
        assert len(resp.json()["cards"]) == 2
        assert len(client.get("/api/cards").json()) == 2

    def test_import_rejects_bad_file(self, client):
        resp = client.post("/api/cards/import", files={"file": ("deck.txt", b"x", "text/plain")})
        assert resp.status_code == 400


class TestCardPdf:
    def test_deck_pdf(self, client):
        ids = [_create_card(client, f"Card {i}")["id"] for i in range(4)]
        resp = client.post("/api/cards/pdf", json={"cardIds": ids, "duplex": "long"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert len(read_pdf(resp.content).pages) == 2

    def test_unknown_ids(self, client):
        resp = client.post("/api/cards/pdf", json={"cardIds": ["nope"]})
        assert resp.status_code == 404

    def test_empty_ids(self, client):
        assert client.post("/api/cards/pdf", json={"cardIds": []}).status_code == 422

    def test_options_validated(self, client):
        card = _create_card(client)
        resp = client.post("/api/cards/pdf", json={"cardIds": [card["id"]], "titleSize": 200})
        assert resp.status_code == 422

    def test_preview(self, client):
        resp = client.post(
            "/api/cards/preview-pdf",
            json={"previewCard": {"title": "Draft", "frontText": "Front", "backText": "Back"}},
        )
        assert resp.status_code == 200
        assert len(read_pdf(resp.content).pages) == 2


class TestMinis:
    def test_multipart_upload(self, client):
        resp = client.post(
            "/api/minis",
            files={"image": ("goblin.png", make_png(), "image/png")},
            data={"name": "Goblin", "tags": '["monster", "small"]'},
        )
        assert resp.status_code == 201
        mini = resp.json()
        assert mini["name"] == "Goblin"
        assert mini["tags"] == ["monster", "small"]
        assert mini["hasBackImage"] is False

    def test_base64_and_image_fetch(self, client):
        mini = _create_mini(client)
        resp = client.get(f"/api/minis/{mini['id']}/image")
        assert resp.status_code == 200
        assert resp.content == make_png()
        assert resp.headers["content-type"] == "image/png"

    def test_invalid_base64(self, client):
        resp = client.post("/api/minis/base64", json={"name": "Bad", "imageData": "***not base64***"})
        assert resp.status_code == 400

    def test_back_image_and_swap(self, client):
        mini = _create_mini(client)
        back = make_png(color=(0, 0, 255))
        payload = base64.b64encode(back).decode()

        assert client.post(f"/api/minis/{mini['id']}/swap-images").status_code == 404
        resp = client.post(f"/api/minis/{mini['id']}/back-image/base64", json={"data": payload})
        assert resp.status_code == 200
        assert client.get(f"/api/minis/{mini['id']}").json()["hasBackImage"] is True

        assert client.post(f"/api/minis/{mini['id']}/swap-images").status_code == 200
        assert client.get(f"/api/minis/{mini['id']}/image").content == back

        assert client.delete(f"/api/minis/{mini['id']}/back-image").status_code == 204
        assert client.get(f"/api/minis/{mini['id']}/back-image").status_code == 404

    def test_update_and_bulk_delete(self, client):
        a = _create_mini(client, "A")
        b = _create_mini(client, "B")
        resp = client.put(f"/api/minis/{a['id']}", json={"name": "Archer"})
        assert resp.json()["name"] == "Archer"
        assert client.get("/api/minis/tags").json() == ["monster"]

        resp = client.request("DELETE", "/api/minis/bulk", json={"ids": [a["id"], b["id"]]})
        assert resp.status_code == 204
        assert client.get("/api/minis").json() == []


class TestSheets:
    @pytest.fixture
    def mini(self, client):
        return _create_mini(client)

    @pytest.fixture
    def sheet(self, client):
        resp = client.post("/api/mini-sheets", json={"name": "Goblins", "code": "GOB", "settings": {"gridSnap": 0.5}})
        assert resp.status_code == 201
        return resp.json()

    def test_partial_settings_merge_with_defaults(self, sheet):
        assert sheet["settings"]["gridSnap"] == 0.5
        assert sheet["settings"]["pageWidth"] == 8.5

    def test_impossible_margins_rejected(self, client):
        resp = client.post(
            "/api/mini-sheets",
            json={"name": "Bad", "settings": {"pageHeight": 1, "marginTop": 0.5, "marginBottom": 0.5}},
        )
        assert resp.status_code == 400

    def test_add_placement_snaps_and_labels(self, client, sheet, mini):
        url = f"/api/mini-sheets/{sheet['id']}/placements"
        first = client.post(url, json={"miniId": mini["id"], "x": 1.2, "y": 2.3}).json()
        p = first["placements"][0]
        assert (p["x"], p["y"]) == (1.0, 2.5)
        assert p["text"] == "*** A1"
        second = client.post(url, json={"miniId": mini["id"], "x": 3, "y": 3}).json()
        assert second["placements"][1]["text"] == "*** A2"

    def test_add_placement_unknown_mini(self, client, sheet):
        resp = client.post(f"/api/mini-sheets/{sheet['id']}/placements", json={"miniId": "nope", "x": 1, "y": 1})
        assert resp.status_code == 404

    def test_auto_arrange(self, client, sheet, mini):
        url = f"/api/mini-sheets/{sheet['id']}/placements"
        for x in (5, 3, 1):
            client.post(url, json={"miniId": mini["id"], "x": x, "y": 4})
        arranged = client.post(f"/api/mini-sheets/{sheet['id']}/auto-arrange").json()["placements"]
        by_label = {p["text"]: p for p in arranged}
        assert by_label["*** A1"]["x"] == 0.5
        assert by_label["*** A2"]["x"] == 1.25
        assert all(p["y"] == 0.5 for p in arranged)

    def test_sheet_pdf(self, client, sheet, mini):
        url = f"/api/mini-sheets/{sheet['id']}/placements"
        client.post(url, json={"miniId": mini["id"], "x": 1, "y": 1})
        resp = client.get(f"/api/mini-sheets/{sheet['id']}/pdf")
        assert resp.status_code == 200
        reader = read_pdf(resp.content)
        assert len(reader.pages) == 1
        assert "GOB A1" in reader.pages[0].extract_text()

    def test_sheet_pdf_code_override(self, client, sheet, mini):
        client.post(f"/api/mini-sheets/{sheet['id']}/placements", json={"miniId": mini["id"], "x": 1, "y": 1})
        resp = client.get(f"/api/mini-sheets/{sheet['id']}/pdf", params={"code": "ORC"})
        assert "ORC A1" in read_pdf(resp.content).pages[0].extract_text()

    def test_pdf_from_unsaved_data(self, client, mini):
        body = {
            "placements": [
                {"id": "p1", "miniId": mini["id"], "x": 0.5, "y": 0.5, "width": 0.75, "height": 0.75},
                {"id": "p2", "miniId": mini["id"], "x": 0.5, "y": 10.8, "width": 0.75, "height": 0.75},
            ],
            "settings": {"pageWidth": 8.5, "pageHeight": 11},
        }
        resp = client.post("/api/mini-sheets/pdf", json=body)
        assert resp.status_code == 200
        assert len(read_pdf(resp.content).pages) == 2

    def test_pdf_from_data_rejects_impossible_margins(self, client):
        body = {"placements": [], "settings": {"pageHeight": 1, "marginTop": 0.5, "marginBottom": 0.5}}
        assert client.post("/api/mini-sheets/pdf", json=body).status_code == 400

    def test_import_and_conglomerate(self, client, sheet, mini):
        client.post(f"/api/mini-sheets/{sheet['id']}/placements", json={"miniId": mini["id"], "x": 1, "y": 1})
        other = client.post("/api/mini-sheets", json={"name": "Orcs", "code": "ORC"}).json()
        client.post(f"/api/mini-sheets/{other['id']}/placements", json={"miniId": mini["id"], "x": 2, "y": 2})

        imported = client.post(
            f"/api/mini-sheets/{other['id']}/import", json={"sourceSheetId": sheet["id"]}
        ).json()
        assert [p["text"] for p in imported["placements"]] == ["*** A1", "GOB A1"]

        resp = client.post(
            "/api/mini-sheets/conglomerate",
            json={"name": "Encounter", "sheetIds": [sheet["id"], other["id"]]},
        )
        assert resp.status_code == 201
        texts = sorted(p["text"] for p in resp.json()["placements"])
        assert texts == ["GOB A1", "GOB A1", "ORC A1"]

    def test_conglomerate_unknown_sheet(self, client, sheet):
        resp = client.post("/api/mini-sheets/conglomerate", json={"name": "X", "sheetIds": [sheet["id"], "nope"]})
        assert resp.status_code == 404

    def test_delete_sheet(self, client, sheet):
        assert client.delete(f"/api/mini-sheets/{sheet['id']}").status_code == 204
        assert client.get(f"/api/mini-sheets/{sheet['id']}").status_code == 404


class TestPdfHeaders:
    def test_sheet_with_non_latin_name_prints(self, client):
        mini = _create_mini(client)
        sheet = client.post("/api/mini-sheets", json={"name": "Gobelins 龍"}).json()
        client.post(f"/api/mini-sheets/{sheet['id']}/placements", json={"miniId": mini["id"], "x": 1, "y": 1})
        resp = client.get(f"/api/mini-sheets/{sheet['id']}/pdf")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        disposition = resp.headers["content-disposition"]
        assert "filename*=UTF-8''Gobelins%20%E9%BE%8D.pdf" in disposition
        assert 'filename="Gobelins_.pdf"' in disposition

    def test_sheet_name_with_quotes(self, client):
        sheet = client.post("/api/mini-sheets", json={"name": 'The "Boss" room'}).json()
        resp = client.get(f"/api/mini-sheets/{sheet['id']}/pdf")
        assert resp.status_code == 200
        assert 'filename="The_Boss_room.pdf"' in resp.headers["content-disposition"]


class TestUnsavedSheetLabels:
    def _body(self, mini_id, **extra):
        return {
            "placements": [
                {"id": "p1", "miniId": mini_id, "x": 1, "y": 1, "width": 1, "height": 1, "text": "*** A1"},
            ],
            "settings": {},
            **extra,
        }

    def test_marker_dropped_without_code(self, client):
        mini = _create_mini(client)
        resp = client.post("/api/mini-sheets/pdf", json=self._body(mini["id"]))
        text = read_pdf(resp.content).pages[0].extract_text()
        assert "A1" in text
        assert "***" not in text

    def test_marker_replaced_by_code(self, client):
        mini = _create_mini(client)
        resp = client.post("/api/mini-sheets/pdf", json=self._body(mini["id"], code="ORC"))
        assert "ORC A1" in read_pdf(resp.content).pages[0].extract_text()


class TestDatabaseDependency:
    def test_database_is_opened_once_per_path(self, tmp_path, monkeypatch):
        from app.controllers.dependencies import get_database

        monkeypatch.setenv("PRINTSTUDIO_DB_PATH", str(tmp_path / "a.db"))
        first = get_database()
        assert get_database() is first

        monkeypatch.setenv("PRINTSTUDIO_DB_PATH", str(tmp_path / "b.db"))
        assert get_database() is not first


class TestContentDisposition:
    def test_ascii_name_passes_through(self):
        from app.controllers.responses import content_disposition

        header = content_disposition("deck.pdf")
        assert header == "inline; filename=\"deck.pdf\"; filename*=UTF-8''deck.pdf"
        header.encode("latin-1")

    def test_non_ascii_name_is_folded_and_encoded(self):
        from app.controllers.responses import ascii_filename, content_disposition

        assert ascii_filename("Épée.pdf") == "Epee.pdf"
        assert ascii_filename("龍.pdf") == "pdf"
        assert ascii_filename("龍") == "download"
        content_disposition("Gobelins 龍.pdf").encode("latin-1")
