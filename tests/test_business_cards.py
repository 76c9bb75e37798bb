import base64
import io
import re

import pytest
from PIL import Image

import business_cards as bc


def _logo_uri():
    buf = io.BytesIO()
    Image.new("RGBA", (40, 20), (10, 20, 200, 255)).save(buf, "PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


CARD = {
    "name": "Jane Doe",
    "title": "Founder",
    "companyName": "Acme & Sons",
    "phones": [{"value": "5551234567", "label": "Mobile"}, {"value": "+44 20 7946 0958"}],
    "emails": [{"value": "info@acme.test"}, {"value": "jane@acme.test", "isPrimary": True}],
    "websites": ["https://acme.test/"],
}


def _page_count(pdf: bytes) -> int:
    return len(re.findall(rb"/Type\s*/Page[^s]", pdf))


def test_avery_positions_fit_the_sheet():
    positions = bc.calculate_avery_8371_positions()
    assert len(positions) == bc.CARDS_PER_SHEET
    assert [p.card_number for p in positions] == list(range(1, 11))
    assert positions[0].x == pytest.approx(12.7) and positions[0].y == pytest.approx(12.7)
    assert positions[1].x == pytest.approx(12.7 + 88.9 + 12.7)
    assert positions[2].y == pytest.approx(12.7 + 50.8 + 1.6)
    assert all(bc.validate_card_position(p) for p in positions)
    assert not bc.validate_card_position(bc.CardPosition(x=200, y=0, card_number=1))


def test_templates_listing():
    templates = {t["id"]: t for t in bc.list_templates()}
    assert templates["modern-professional"]["isDefault"] is True
    assert templates["creative-bold"]["orientation"] == "portrait"
    assert templates["classic-centered"]["orientation"] == "landscape"
    assert bc.get_default_template()["id"] == "modern-professional"
    assert bc.get_template("nope") is None


def test_validate_card_data():
    assert bc.validate_card_data(CARD) == []
    errors = bc.validate_card_data({"name": " ", "companyName": "Acme", "phones": [{"value": ""}]})
    assert "name is required" in errors
    assert any("at least one" in e for e in errors)
    assert bc.validate_card_data("nope") == ["cardData must be an object"]


@pytest.mark.parametrize("raw,expected", [
    ("5551234567", "(555) 123-4567"),
    ("1-555-123-4567", "+1 (555) 123-4567"),
    ("+44 20 7946 0958", "+44 20 7946 0958"),
])
def test_format_phone_number(raw, expected):
    assert bc.format_phone_number(raw) == expected


def test_contact_lines_use_primary_email_and_strip_scheme():
    lines = bc.build_contact_lines(CARD, ["phones", "emails", "websites"])
    assert lines == ["Mobile: (555) 123-4567", "+44 20 7946 0958", "jane@acme.test", "acme.test"]
    assert len(bc.build_contact_lines(CARD, ["phones", "emails", "websites"], max_lines=2)) == 2


def test_sanitize_filename_part():
    assert bc.sanitize_filename_part("Acme & Sons") == "acme---sons"
    assert bc.sanitize_filename_part("") == "company"


def test_numeric_card_values_are_coerced():
    card = {"name": 42, "companyName": 1999, "phones": [{"value": 5551234567}, 18005550000]}
    assert bc.validate_card_data(card) == []
    assert bc.build_contact_lines(card, ["phones"]) == ["(555) 123-4567", "+1 (800) 555-0000"]
    assert bc.sanitize_filename_part(1999) == "1999"
    assert bc.generate_business_cards_pdf("modern-professional", card).startswith(b"%PDF")


def test_load_logo_image():
    assert bc.load_logo_image(_logo_uri()) is not None
    assert bc.load_logo_image("data:image/png;base64,bm90LWFuLWltYWdl") is None
    assert bc.load_logo_image("https://example.com/logo.png") is None
    assert bc.load_logo_image(None) is None


@pytest.mark.parametrize("template_id", ["modern-professional", "creative-bold", "classic-centered"])
def test_pdf_renders_every_template(template_id):
    pdf = bc.generate_business_cards_pdf(template_id, dict(CARD, logo={"logoDataUri": _logo_uri()}))
    assert pdf.startswith(b"%PDF")
    assert _page_count(pdf) == 1


@pytest.mark.parametrize("count,pages", [(1, 1), (10, 1), (11, 2), (25, 3)])
def test_pdf_page_count_follows_card_count(count, pages):
    pdf = bc.generate_business_cards_pdf("modern-professional", CARD, count)
    assert _page_count(pdf) == pages


@pytest.mark.parametrize("template_id,count", [("nope", 10), ("modern-professional", 0),
                                               ("modern-professional", 501)])
def test_pdf_rejects_bad_input(template_id, count):
    with pytest.raises(ValueError):
        bc.generate_business_cards_pdf(template_id, CARD, count)


def test_preview_is_single_card_page():
    pdf = bc.generate_business_card_preview(None, CARD)
    assert _page_count(pdf) == 1
    with pytest.raises(ValueError):
        bc.generate_business_card_preview("nope", CARD)


# --- routes ---

def test_generate_route_returns_pdf_attachment(client, make_user, login):
    login(client, make_user())
    resp = client.post("/api/business-cards/generate",
                       json={"templateId": "modern-professional", "cardData": CARD, "cardCount": 20})
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    disposition = resp.headers["Content-Disposition"]
    assert "attachment" in disposition
    assert "business-cards-acme---sons-" in disposition
    assert _page_count(resp.data) == 2


def test_generate_route_accepts_numeric_contact_values(client, make_user, login):
    login(client, make_user())
    card = {"name": "Al", "companyName": "Acme", "phones": [{"value": 5551234567}]}
    resp = client.post("/api/business-cards/generate", json={"templateId": "modern-professional", "cardData": card})
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"


def test_generate_route_validation(client, make_user, login):
    login(client, make_user())
    assert client.post("/api/business-cards/generate", json={"cardData": CARD}).status_code == 400
    resp = client.post("/api/business-cards/generate", json={"templateId": "nope", "cardData": CARD})
    assert resp.status_code == 400
    resp = client.post("/api/business-cards/generate",
                       json={"templateId": "modern-professional", "cardData": {"name": "Jane"}})
    assert resp.status_code == 400
    assert "details" in resp.get_json()
    resp = client.post("/api/business-cards/generate",
                       json={"templateId": "modern-professional", "cardData": CARD, "cardCount": 1000})
    assert resp.status_code == 400


def test_generate_route_get_not_allowed(client):
    resp = client.get("/api/business-cards/generate")
    assert resp.status_code == 405
    assert "Use POST" in resp.get_json()["error"]


def test_generate_route_requires_login(client):
    resp = client.post("/api/business-cards/generate", json={"templateId": "modern-professional", "cardData": CARD})
    assert resp.status_code == 401


def test_preview_and_templates_routes(client, make_user, login):
    assert len(client.get("/api/business-cards/templates").get_json()["templates"]) == 3
    login(client, make_user())
    body = client.post("/api/business-cards/preview", json={"templateId": "creative-bold", "cardData": CARD}).get_json()
    assert body["pdfDataUri"].startswith("data:application/pdf;base64,")

