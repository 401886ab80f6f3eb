import asyncio
import io

import pytest
from PIL import Image

import rasterizer as rasterizer_module
from pdf_builder import ExportError, export_invoice, plan_bands
from rasterizer import BASE_WIDTH, PillowRasterizer, RasterizationError, load_image
from renderer import build_render_descriptor, render_invoice


def make_invoice(item_count=2, **seller):
    return {
        "number": "INV-000003",
        "status": "draft",
        "client": {"name": "Acme", "address": "Dubai, UAE"},
        "seller": {"name": "Gulf Chemicals", "address": "Sharjah", **seller},
        "issue_date": "2026-02-01",
        "due_date": "2026-02-15",
        "items": [
            {"id": i, "description": f"Item {i} " + "with a long description " * 3,
             "quantity": 1, "unit_price": 10}
            for i in range(1, item_count + 1)
        ],
        "notes": "Deliver to warehouse 4",
        "subtotal": 10.0 * item_count,
        "tax_amount": 0.5 * item_count,
        "tax_rate": 5.0,
        "total": 10.5 * item_count,
    }


def test_render_width_follows_scale():
    descriptor = build_render_descriptor(make_invoice(), {})
    image = PillowRasterizer().render(descriptor, scale=1)
    assert image.width == BASE_WIDTH
    assert image.height > 0

    doubled = PillowRasterizer().render(descriptor, scale=2)
    assert doubled.width == BASE_WIDTH * 2


def test_height_grows_with_content():
    short = PillowRasterizer().render(build_render_descriptor(make_invoice(2), {}), scale=1)
    tall = PillowRasterizer().render(build_render_descriptor(make_invoice(40), {}), scale=1)
    assert tall.height > short.height


def test_rasterize_is_awaitable():
    descriptor = build_render_descriptor(make_invoice(), {})
    image = asyncio.run(PillowRasterizer().rasterize(descriptor, scale=1))
    assert image.mode == "RGB"


def test_renders_logo_and_signature(png_data_url):
    invoice = make_invoice(logo=png_data_url, signature=png_data_url)
    descriptor = build_render_descriptor(invoice, {"show_signature": True})
    without = build_render_descriptor(make_invoice(), {"show_signature": True})

    with_images = PillowRasterizer().render(descriptor, scale=1)
    plain = PillowRasterizer().render(without, scale=1)
    assert with_images.height > plain.height


def test_bad_accent_color_falls_back():
    descriptor = build_render_descriptor(make_invoice(), {"primary_color": "not-a-color"})
    assert PillowRasterizer().render(descriptor, scale=1).width == BASE_WIDTH


def test_undecodable_image_is_an_error():
    with pytest.raises(RasterizationError):
        load_image("data:image/png;base64,AAAA")
    with pytest.raises(RasterizationError):
        load_image("/nonexistent/logo.png")


def test_cross_origin_images_can_be_skipped(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("remote image fetched")

    monkeypatch.setattr(rasterizer_module.requests, "get", fail)
    assert load_image("https://cdn.example.com/logo.png", cross_origin_images=False) is None


def test_cross_origin_images_are_fetched(monkeypatch):
    buffer = io.BytesIO()
    Image.new("RGB", (5, 5), "blue").save(buffer, "PNG")

    class Response:
        content = buffer.getvalue()

        def raise_for_status(self):
            pass

    monkeypatch.setattr(rasterizer_module.requests, "get", lambda url, timeout: Response())
    image = load_image("https://cdn.example.com/logo.png")
    assert image.size == (5, 5)
    assert image.mode == "RGBA"


def test_long_invoice_exports_to_several_pages(registry):
    invoice = make_invoice(60)
    rasterizer = PillowRasterizer()
    capture = rasterizer.render(render_invoice(invoice, registry), scale=1)

    result = asyncio.run(export_invoice(invoice, registry, rasterizer, scale=1))
    assert result.page_count == len(plan_bands(capture.width, capture.height))
    assert result.page_count > 1


def test_broken_logo_aborts_export(registry):
    invoice = make_invoice(logo="data:image/png;base64,AAAA")
    with pytest.raises(ExportError):
        asyncio.run(export_invoice(invoice, registry, PillowRasterizer(), scale=1))
