"""Pillow rasterizer: paints a render descriptor into one tall RGB image."""

from __future__ import annotations

import asyncio
import base64
import binascii
import functools
import io
import logging
from pathlib import Path
from urllib.parse import unquote_to_bytes

import requests
from PIL import Image, ImageColor, ImageDraw, ImageFont

from pdf_builder import ExportError
from template_registry import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)

# A4 width at 96 dpi, before scaling
BASE_WIDTH = 794
PADDING = 48

GRAY = (107, 114, 128)
DARK = (17, 24, 39)
LIGHT = (243, 244, 246)
RULE = (229, 231, 235)

GENERIC_FAMILIES = ("sans-serif", "serif", "monospace", "system-ui", "cursive")


class RasterizationError(ExportError):
    """The rendered document could not be turned into pixels."""


@functools.lru_cache(maxsize=64)
def load_font(family: str, size: int, bold: bool = False):
    """First installed TrueType face of a CSS-style family list.

    Falls back to DejaVu Sans and then to Pillow's built-in font.
    """
    candidates = []
    for name in family.split(","):
        name = name.strip().strip("'\"")
        if not name or name.lower() in GENERIC_FAMILIES:
            continue
        base = name.replace(" ", "")
        candidates += [f"{base}-{'Bold' if bold else 'Regular'}.ttf", f"{base}.ttf"]
    candidates.append("DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf")

    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.warning(f"No TrueType font found for '{family}', using the built-in font")
    return ImageFont.load_default(size=size)


def load_image(source: str, cross_origin_images: bool = True):
    """Decode a data URL, http(s) URL or local path into an RGBA image.

    Remote images are skipped (None) when cross-origin loading is off.
    Anything that cannot be decoded raises RasterizationError.
    """
    try:
        if source.startswith("data:"):
            header, _, payload = source.partition(",")
            if ";base64" in header:
                raw = base64.b64decode(payload, validate=True)
            else:
                raw = unquote_to_bytes(payload)
        elif source.startswith(("http://", "https://")):
            if not cross_origin_images:
                logger.warning(f"Skipping cross-origin image {source}")
                return None
            response = requests.get(source, timeout=10)
            response.raise_for_status()
            raw = response.content
        else:
            raw = Path(source).read_bytes()
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (OSError, ValueError, binascii.Error, requests.RequestException) as e:
        raise RasterizationError(f"Unsupported embedded image: {e}") from e
    return image.convert("RGBA")


def _color(value: str):
    try:
        return ImageColor.getrgb(value)
    except ValueError:
        logger.warning(f"Invalid accent color {value!r}, using the default")
        return ImageColor.getrgb(DEFAULT_SETTINGS["primary_color"])


def _fit(image, max_width: int, max_height: int):
    ratio = min(max_width / image.width, max_height / image.height, 1)
    size = (max(1, int(image.width * ratio)), max(1, int(image.height * ratio)))
    return image.resize(size, Image.Resampling.LANCZOS)


class _Layout:
    """Collects draw operations while tracking the vertical cursor."""

    def __init__(self, width: int, scale: float):
        self.width = width
        self.scale = scale
        self.ops = []
        self.y = self.u(PADDING)
        self._measure = ImageDraw.Draw(Image.new("RGB", (1, 1)))

    def u(self, value: float) -> int:
        return int(round(value * self.scale))

    @property
    def left(self) -> int:
        return self.u(PADDING)

    @property
    def right(self) -> int:
        return self.width - self.u(PADDING)

    def text_width(self, text: str, font) -> float:
        return self._measure.textlength(text, font=font)

    def line_height(self, font) -> int:
        bbox = font.getbbox("Ag")
        return max(1, int((bbox[3] - bbox[1]) * 1.6))

    def wrap(self, text: str, font, max_width: float) -> list[str]:
        lines = []
        for paragraph in text.splitlines() or [""]:
            line = ""
            for word in paragraph.split():
                candidate = f"{line} {word}".strip()
                if not line or self.text_width(candidate, font) <= max_width:
                    line = candidate
                else:
                    lines.append(line)
                    line = word
            lines.append(line)
        return lines

    def text(self, x: float, y: int, text: str, font, fill, align: str = "left"):
        if align == "right":
            x -= self.text_width(text, font)
        elif align == "center":
            x -= self.text_width(text, font) / 2
        self.ops.append(("text", (x, y), text, font, fill))
        return self.line_height(font)

    def rule(self, y: int, fill=RULE):
        self.ops.append(("line", (self.left, y, self.right, y), fill, max(1, self.u(1))))

    def rect(self, box, fill):
        self.ops.append(("rect", box, fill))

    def image(self, image, x: int, y: int):
        self.ops.append(("image", image, (int(x), int(y))))

    def paint(self):
        height = max(self.y + self.u(PADDING), 1)
        canvas = Image.new("RGB", (self.width, height), "white")
        draw = ImageDraw.Draw(canvas)
        for op in self.ops:
            kind = op[0]
            if kind == "text":
                draw.text(op[1], op[2], font=op[3], fill=op[4])
            elif kind == "line":
                draw.line(op[1], fill=op[2], width=op[3])
            elif kind == "rect":
                draw.rectangle(op[1], fill=op[2])
            elif kind == "image":
                canvas.paste(op[1], op[2], op[1])
        return canvas


class PillowRasterizer:
    """Rendering collaborator used by the PDF exporter.

    The descriptor is laid out on a BASE_WIDTH * scale wide canvas that grows
    to whatever height the content needs.
    """

    async def rasterize(self, descriptor: dict, scale: float = 2, cross_origin_images: bool = True):
        return await asyncio.to_thread(self.render, descriptor, scale, cross_origin_images)

    def render(self, descriptor: dict, scale: float = 2, cross_origin_images: bool = True):
        if scale <= 0:
            raise RasterizationError("Scale must be positive")
        family = descriptor.get("font_family") or DEFAULT_SETTINGS["font_family"]
        accent = _color(descriptor.get("accent_color") or DEFAULT_SETTINGS["primary_color"])
        layout = _Layout(int(round(BASE_WIDTH * scale)), scale)
        fonts = {
            "title": load_font(family, layout.u(28), True),
            "heading": load_font(family, layout.u(16), True),
            "label": load_font(family, layout.u(11), True),
            "body": load_font(family, layout.u(12)),
            "bold": load_font(family, layout.u(12), True),
        }

        self._header(layout, descriptor, fonts, accent, cross_origin_images)
        self._parties(layout, descriptor, fonts)
        self._items(layout, descriptor, fonts)
        self._totals(layout, descriptor, fonts)
        self._payment(layout, descriptor, fonts)
        self._notes(layout, descriptor, fonts)
        self._footer(layout, descriptor, fonts, cross_origin_images)
        return layout.paint()

    def _header(self, layout, descriptor, fonts, accent, cross_origin_images):
        header = descriptor.get("header") or {}
        top = layout.y
        x = layout.left

        if descriptor.get("logo"):
            logo = load_image(descriptor["logo"], cross_origin_images)
            if logo is not None:
                logo = _fit(logo, layout.u(64), layout.u(64))
                layout.image(logo, x, top)
                x += logo.width + layout.u(16)

        left_y = top
        left_y += layout.text(x, left_y, header.get("title", "INVOICE"), fonts["title"], accent)
        left_y += layout.text(x, left_y, header.get("number", ""), fonts["body"], GRAY)

        seller = descriptor.get("seller") or {}
        right_y = top
        if seller.get("name"):
            right_y += layout.text(layout.right, right_y, seller["name"], fonts["heading"], DARK, "right")
        for line in seller.get("lines", []):
            right_y += layout.text(layout.right, right_y, line, fonts["body"], GRAY, "right")

        layout.y = max(left_y, right_y, top + layout.u(64)) + layout.u(32)

    def _parties(self, layout, descriptor, fonts):
        top = layout.y
        client = descriptor.get("client") or {}
        left_y = top
        left_y += layout.text(layout.left, left_y, "BILL TO:", fonts["label"], GRAY)
        left_y += layout.text(layout.left, left_y, client.get("name", ""), fonts["bold"], DARK)
        column = layout.width / 2 - layout.u(PADDING)
        for line in client.get("lines", []):
            for wrapped in layout.wrap(line, fonts["body"], column):
                left_y += layout.text(layout.left, left_y, wrapped, fonts["body"], GRAY)

        right_y = top
        mid = layout.width / 2
        entries = list(descriptor.get("dates") or [])
        header = descriptor.get("header") or {}
        if header.get("status"):
            entries.append({"label": "Status", "value": header["status"]})
        for entry in entries:
            right_y += layout.text(mid, right_y, f"{entry['label'].upper()}:", fonts["label"], GRAY)
            right_y += layout.text(mid, right_y, entry["value"], fonts["body"], DARK)

        layout.y = max(left_y, right_y) + layout.u(32)

    def _items(self, layout, descriptor, fonts):
        cols = {
            "index": layout.left + layout.u(8),
            "description": layout.left + layout.u(40),
            "quantity": layout.right - layout.u(240),
            "unit_price": layout.right - layout.u(120),
            "amount": layout.right - layout.u(8),
        }
        description_width = cols["quantity"] - layout.u(80) - cols["description"]
        pad = layout.u(8)

        row_height = layout.line_height(fonts["label"]) + 2 * pad
        layout.rect((layout.left, layout.y, layout.right, layout.y + row_height), LIGHT)
        y = layout.y + pad
        layout.text(cols["index"], y, "#", fonts["label"], GRAY)
        layout.text(cols["description"], y, "DESCRIPTION", fonts["label"], GRAY)
        layout.text(cols["quantity"], y, "QUANTITY", fonts["label"], GRAY, "right")
        layout.text(cols["unit_price"], y, "UNIT PRICE", fonts["label"], GRAY, "right")
        layout.text(cols["amount"], y, "TOTAL", fonts["label"], GRAY, "right")
        layout.y += row_height

        for item in descriptor.get("items") or []:
            y = layout.y + pad
            lines = layout.wrap(item["description"], fonts["body"], description_width)
            layout.text(cols["index"], y, str(item["index"]), fonts["body"], GRAY)
            line_y = y
            for line in lines:
                line_y += layout.text(cols["description"], line_y, line, fonts["body"], DARK)
            layout.text(cols["quantity"], y, item["quantity"], fonts["body"], GRAY, "right")
            layout.text(cols["unit_price"], y, item["unit_price"], fonts["body"], GRAY, "right")
            layout.text(cols["amount"], y, item["amount"], fonts["bold"], DARK, "right")
            layout.y = line_y + pad
            layout.rule(layout.y)

        layout.y += layout.u(24)

    def _totals(self, layout, descriptor, fonts):
        totals = descriptor.get("totals") or {}
        label_x = layout.right - layout.u(256)
        rows = [
            ("Subtotal:", totals.get("subtotal", ""), fonts["body"]),
            (f"{totals.get('tax_label', 'VAT')}:", totals.get("tax_amount", ""), fonts["body"]),
        ]
        for label, value, font in rows:
            layout.text(label_x, layout.y, label, font, GRAY)
            layout.y += layout.text(layout.right, layout.y, value, font, DARK, "right")

        layout.ops.append(("line", (label_x, layout.y, layout.right, layout.y), RULE, max(1, layout.u(1))))
        layout.y += layout.u(8)
        layout.text(label_x, layout.y, "Total:", fonts["bold"], DARK)
        layout.y += layout.text(layout.right, layout.y, totals.get("total", ""), fonts["bold"], DARK, "right")
        layout.y += layout.u(24)

    def _section_title(self, layout, title, fonts):
        layout.rule(layout.y)
        layout.y += layout.u(16)
        layout.y += layout.text(layout.left, layout.y, title, fonts["label"], GRAY)

    def _payment(self, layout, descriptor, fonts):
        details = descriptor.get("payment_details")
        if not details:
            return
        self._section_title(layout, "PAYMENT DETAILS", fonts)
        for entry in details:
            layout.y += layout.text(layout.left, layout.y, f"{entry['label']}: {entry['value']}", fonts["body"], DARK)
        layout.y += layout.u(16)

    def _notes(self, layout, descriptor, fonts):
        notes = descriptor.get("notes")
        if not notes:
            return
        self._section_title(layout, "NOTES", fonts)
        for line in layout.wrap(notes, fonts["body"], layout.right - layout.left):
            layout.y += layout.text(layout.left, layout.y, line, fonts["body"], DARK)
        layout.y += layout.u(16)

    def _footer(self, layout, descriptor, fonts, cross_origin_images):
        layout.rule(layout.y)
        layout.y += layout.u(24)
        center = layout.width / 2
        if descriptor.get("footer_text"):
            layout.y += layout.text(center, layout.y, descriptor["footer_text"], fonts["body"], GRAY, "center")
        if descriptor.get("signature"):
            signature = load_image(descriptor["signature"], cross_origin_images)
            if signature is not None:
                signature = _fit(signature, layout.u(200), layout.u(64))
                layout.y += layout.u(16)
                layout.image(signature, center - signature.width / 2, layout.y)
                layout.y += signature.height
                layout.y += layout.text(center, layout.y, "Authorized Signature", fonts["label"], GRAY, "center")
