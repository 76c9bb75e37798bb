# business_cards.py
"""Printable business cards for generated logos.

Cards are laid out on Avery 8371 stock: US Letter, two columns by five rows of
3.5" x 2" cards. Templates are zone lists in millimetres measured from the
card's top-left corner; portrait templates are turned a quarter clockwise to
fit the landscape slot.
"""
import base64
import io
import logging
import math
import re
from collections import namedtuple

from PIL import Image
from reportlab.lib.colors import HexColor
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

# Avery 8371, all in mm
PAGE_WIDTH_MM = 215.9
PAGE_HEIGHT_MM = 279.4
CARD_WIDTH_MM = 88.9
CARD_HEIGHT_MM = 50.8
MARGIN_TOP_MM = 12.7
MARGIN_LEFT_MM = 12.7
GAP_X_MM = 12.7
GAP_Y_MM = 1.6      # perforation
COLUMNS = 2
ROWS = 5
CARDS_PER_SHEET = COLUMNS * ROWS
MAX_CARD_COUNT = 500

CardPosition = namedtuple("CardPosition", ["x", "y", "card_number"])

BUSINESS_CARD_TEMPLATES = [
    {
        "id": "modern-professional",
        "name": "Modern Professional",
        "description": "Clean layout with prominent logo and organized contact info",
        "isDefault": True,
        "cardWidth": 88.9,
        "cardHeight": 50.8,
        "zones": [
            {"id": "logo", "type": "logo", "x": 2, "y": 2, "width": 18, "height": 15,
             "maxWidth": 16, "maxHeight": 13},
            {"id": "company-name", "type": "company-name", "x": 22, "y": 2, "width": 64, "height": 6,
             "align": "left", "fontSize": 10, "bold": True, "color": "#1F2937"},
            {"id": "name", "type": "personal-info", "x": 22, "y": 10, "width": 64, "height": 6,
             "align": "left", "fontSize": 9, "bold": True, "color": "#374151"},
            {"id": "title", "type": "title-info", "x": 22, "y": 17, "width": 64, "height": 5,
             "align": "left", "fontSize": 8, "color": "#6B7280"},
            {"id": "contact-block", "type": "contact-block", "x": 22, "y": 24, "width": 64, "height": 22,
             "align": "left", "fontSize": 7, "color": "#6B7280", "lineHeight": 1.8,
             "fields": ["phones", "emails", "websites"], "maxLines": 4},
        ],
        "backgroundColor": "#FFFFFF",
    },
    {
        "id": "creative-bold",
        "name": "Creative Bold",
        "description": "Eye-catching design with large logo and creative typography",
        "isDefault": False,
        "cardWidth": 50.8,
        "cardHeight": 88.9,
        "zones": [
            {"id": "logo", "type": "logo", "x": 12.4, "y": 8, "width": 26, "height": 20,
             "maxWidth": 26, "maxHeight": 20},
            {"id": "company-name", "type": "company-name", "x": 4, "y": 32, "width": 42.8, "height": 8,
             "align": "center", "fontSize": 12, "bold": True, "color": "#7C3AED", "uppercase": True},
            {"id": "personal-info", "type": "personal-info", "x": 4, "y": 44, "width": 42.8, "height": 10,
             "align": "center", "fontSize": 9, "color": "#1F2937", "lineHeight": 1.2,
             "secondary": ["title"]},
            {"id": "contact-info", "type": "contact-block", "x": 4, "y": 58, "width": 42.8, "height": 26,
             "align": "center", "fontSize": 7, "color": "#4B5563", "lineHeight": 1.5,
             "fields": ["emails", "phones", "websites"], "maxLines": 6},
        ],
        "backgroundColor": "#FEFCE8",
        "borderColor": "#7C3AED",
        "borderWidth": 1,
    },
    {
        "id": "classic-centered",
        "name": "Classic Centered",
        "description": "Symmetrical layout with the logo above a centered name block",
        "isDefault": False,
        "cardWidth": 88.9,
        "cardHeight": 50.8,
        "zones": [
            {"id": "logo", "type": "logo", "x": 34.45, "y": 3, "width": 20, "height": 14,
             "maxWidth": 20, "maxHeight": 14},
            {"id": "company-name", "type": "company-name", "x": 4, "y": 19, "width": 80.9, "height": 6,
             "align": "center", "fontSize": 11, "bold": True, "color": "#111827"},
            {"id": "personal-info", "type": "personal-info", "x": 4, "y": 26, "width": 80.9, "height": 9,
             "align": "center", "fontSize": 8, "color": "#374151", "lineHeight": 1.3,
             "secondary": ["title"]},
            {"id": "contact-block", "type": "contact-block", "x": 4, "y": 37, "width": 80.9, "height": 11,
             "align": "center", "fontSize": 6.5, "color": "#6B7280", "lineHeight": 1.4,
             "fields": ["phones", "emails", "websites"], "maxLines": 3},
        ],
        "backgroundColor": "#FFFFFF",
        "borderColor": "#D1D5DB",
        "borderWidth": 0.5,
    },
]


def get_template(template_id):
    for t in BUSINESS_CARD_TEMPLATES:
        if t["id"] == template_id:
            return t
    return None


def get_default_template():
    return next((t for t in BUSINESS_CARD_TEMPLATES if t.get("isDefault")), BUSINESS_CARD_TEMPLATES[0])


def list_templates():
    return [{
        "id": t["id"],
        "name": t["name"],
        "description": t["description"],
        "isDefault": t.get("isDefault", False),
        "orientation": "portrait" if t["cardHeight"] > t["cardWidth"] else "landscape",
    } for t in BUSINESS_CARD_TEMPLATES]


def calculate_avery_8371_positions():
    positions = []
    for row in range(ROWS):
        for col in range(COLUMNS):
            positions.append(CardPosition(
                x=MARGIN_LEFT_MM + col * (CARD_WIDTH_MM + GAP_X_MM),
                y=MARGIN_TOP_MM + row * (CARD_HEIGHT_MM + GAP_Y_MM),
                card_number=row * COLUMNS + col + 1,
            ))
    invalid = [p for p in positions if not validate_card_position(p)]
    if invalid:
        logger.warning("Avery 8371 positions outside the page: %s", invalid)
    return positions


def validate_card_position(position) -> bool:
    return (position.x >= 0 and position.y >= 0
            and position.x + CARD_WIDTH_MM <= PAGE_WIDTH_MM
            and position.y + CARD_HEIGHT_MM <= PAGE_HEIGHT_MM)


# --- card data ---

def _text(value) -> str:
    return "" if value is None else str(value).strip()


def _field_values(fields):
    """Contact fields arrive as ``{"value", "label", "isPrimary"}`` dicts or bare values.

    Values are returned as stripped strings; JSON numbers are accepted for phones.
    """
    if isinstance(fields, (str, int, float, dict)):
        fields = [fields]
    out = []
    for f in fields or []:
        if isinstance(f, (str, int, float)):
            f = {"value": f}
        elif not isinstance(f, dict):
            continue
        value = _text(f.get("value"))
        if value:
            out.append({**f, "value": value})
    return out


def validate_card_data(card_data) -> list[str]:
    errors = []
    if not isinstance(card_data, dict):
        return ["cardData must be an object"]
    if not _text(card_data.get("name")):
        errors.append("name is required")
    if not _text(card_data.get("companyName")):
        errors.append("companyName is required")
    if not any(_field_values(card_data.get(k)) for k in ("phones", "emails", "websites")):
        errors.append("at least one phone, email or website is required")
    return errors


def format_phone_number(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits[0] == "1":
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return phone


def build_contact_lines(card_data, fields, max_lines=None):
    lines = []
    for field in fields:
        if field == "phones":
            for p in _field_values(card_data.get("phones")):
                number = format_phone_number(p["value"])
                lines.append(f"{p['label']}: {number}" if p.get("label") else number)
        elif field == "emails":
            emails = _field_values(card_data.get("emails"))
            if emails:
                primary = next((e for e in emails if e.get("isPrimary")), emails[0])
                lines.append(primary["value"])
        elif field == "websites":
            for w in _field_values(card_data.get("websites")):
                lines.append(re.sub(r"^https?://", "", w["value"]).rstrip("/"))
    if max_lines:
        lines = lines[:max_lines]
    return lines


def sanitize_filename_part(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", _text(value)).lower() or "company"


def load_logo_image(data_uri):
    """ImageReader for a ``data:image/...;base64,`` logo, or None when it cannot be decoded."""
    if not data_uri or not isinstance(data_uri, str) or not data_uri.startswith("data:image/"):
        return None
    try:
        _, b64 = data_uri.split(",", 1)
        img = Image.open(io.BytesIO(base64.b64decode(b64)))
        img.load()
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        buf.seek(0)
        return ImageReader(buf)
    except Exception:
        logger.warning("Could not decode logo for business card", exc_info=True)
        return None


# --- drawing ---

def _fit_text(text, font, size, max_width_pt):
    if stringWidth(text, font, size) <= max_width_pt:
        return text
    while text and stringWidth(text + "…", font, size) > max_width_pt:
        text = text[:-1]
    return text + "…" if text else ""


def _draw_line(c, text, zone, baseline, size, font):
    x = zone["x"] * mm
    w = zone["width"] * mm
    text = _fit_text(text, font, size, w)
    align = zone.get("align", "left")
    if align == "center":
        c.drawCentredString(x + w / 2, baseline, text)
    elif align == "right":
        c.drawRightString(x + w, baseline, text)
    else:
        c.drawString(x, baseline, text)


def _draw_text_zone(c, zone, lines, card_h_pt):
    size = zone.get("fontSize", 8)
    font = "Helvetica-Bold" if zone.get("bold") else "Helvetica"
    step = size * zone.get("lineHeight", 1.2)
    top = card_h_pt - zone["y"] * mm
    bottom = top - zone["height"] * mm
    c.setFont(font, size)
    c.setFillColor(HexColor(zone.get("color", "#000000")))
    baseline = top - size
    for i, line in enumerate(lines):
        # first line always shows; the rest must fit the zone
        if i and baseline - size * 0.2 < bottom:
            break
        if zone.get("uppercase"):
            line = line.upper()
        _draw_line(c, line, zone, baseline, size, font)
        baseline -= step


def _draw_logo_zone(c, zone, logo, card_h_pt):
    x = zone["x"] * mm
    w = zone["width"] * mm
    h = zone["height"] * mm
    y = card_h_pt - zone["y"] * mm - h
    if logo is None:
        c.setFillColor(HexColor("#E5E7EB"))
        c.setStrokeColor(HexColor("#9CA3AF"))
        c.setLineWidth(0.5)
        c.rect(x, y, w, h, fill=1, stroke=1)
        c.setFillColor(HexColor("#6B7280"))
        c.setFont("Helvetica-Bold", 7)
        c.drawCentredString(x + w / 2, y + h / 2 - 2.5, "LOGO")
        return
    lw = min(w, zone.get("maxWidth", zone["width"]) * mm) * 0.9
    lh = min(h, zone.get("maxHeight", zone["height"]) * mm) * 0.9
    c.drawImage(logo, x + (w - lw) / 2, y + (h - lh) / 2, width=lw, height=lh,
                preserveAspectRatio=True, anchor="c", mask="auto")


def draw_card(c, template, card_data, logo):
    """Draw one card with its bottom-left corner at the current origin."""
    card_w = template["cardWidth"] * mm
    card_h = template["cardHeight"] * mm

    c.setFillColor(HexColor(template.get("backgroundColor", "#FFFFFF")))
    c.rect(0, 0, card_w, card_h, fill=1, stroke=0)
    if template.get("borderColor"):
        c.setStrokeColor(HexColor(template["borderColor"]))
        c.setLineWidth(template.get("borderWidth", 1))
        c.rect(0, 0, card_w, card_h, fill=0, stroke=1)

    for zone in template["zones"]:
        ztype = zone["type"]
        if ztype == "logo":
            _draw_logo_zone(c, zone, logo, card_h)
        elif ztype == "company-name":
            _draw_text_zone(c, zone, [_text(card_data.get("companyName"))], card_h)
        elif ztype == "personal-info":
            lines = [_text(card_data.get("name"))]
            lines += [_text(card_data.get(k)) for k in zone.get("secondary", []) if _text(card_data.get(k))]
            _draw_text_zone(c, zone, lines, card_h)
        elif ztype == "title-info":
            if _text(card_data.get("title")):
                _draw_text_zone(c, zone, [_text(card_data["title"])], card_h)
        elif ztype == "contact-block":
            lines = build_contact_lines(card_data, zone.get("fields", []), zone.get("maxLines"))
            _draw_text_zone(c, zone, lines, card_h)


def _place_in_slot(c, template, position):
    """Move the origin to where the card's bottom-left corner goes for this slot."""
    page_h = PAGE_HEIGHT_MM * mm
    slot_x = position.x * mm
    slot_top = page_h - position.y * mm
    if template["cardHeight"] > template["cardWidth"]:
        # portrait: quarter turn clockwise, card top ends up on the slot's right edge
        c.translate(slot_x, slot_top)
        c.rotate(-90)
    else:
        c.translate(slot_x, slot_top - CARD_HEIGHT_MM * mm)


def _logo_uri(card_data):
    logo = card_data.get("logo")
    if isinstance(logo, dict):
        return logo.get("logoDataUri") or logo.get("dataUri")
    return logo if isinstance(logo, str) else None


def generate_business_cards_pdf(template_id, card_data, card_count=CARDS_PER_SHEET) -> bytes:
    template = get_template(template_id)
    if template is None:
        raise ValueError(f"Unknown business card template: {template_id}")

    card_count = int(card_count)
    if card_count < 1 or card_count > MAX_CARD_COUNT:
        raise ValueError(f"cardCount must be between 1 and {MAX_CARD_COUNT}")

    errors = validate_card_data(card_data)
    if errors:
        raise ValueError("; ".join(errors))

    logo = load_logo_image(_logo_uri(card_data))
    positions = calculate_avery_8371_positions()
    pages = math.ceil(card_count / CARDS_PER_SHEET)

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(PAGE_WIDTH_MM * mm, PAGE_HEIGHT_MM * mm))
    c.setTitle(f"Business Cards - {_text(card_data.get('companyName'))}")
    c.setSubject("Avery 8371")

    drawn = 0
    for page in range(pages):
        for pos in positions:
            if drawn >= card_count:
                break
            c.saveState()
            _place_in_slot(c, template, pos)
            draw_card(c, template, card_data, logo)
            c.restoreState()
            drawn += 1
        c.showPage()
    c.save()

    logger.info("Rendered %d business cards (%d pages, template %s)", drawn, pages, template["id"])
    return buf.getvalue()


def generate_business_card_preview(template_id, card_data) -> bytes:
    """Single card on a card-sized page."""
    template = get_template(template_id) if template_id else get_default_template()
    if template is None:
        raise ValueError(f"Unknown business card template: {template_id}")
    errors = validate_card_data(card_data)
    if errors:
        raise ValueError("; ".join(errors))
    logo = load_logo_image(_logo_uri(card_data))
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(template["cardWidth"] * mm, template["cardHeight"] * mm))
    draw_card(c, template, card_data, logo)
    c.showPage()
    c.save()
    return buf.getvalue()
