"""Paginated PDF export: one captured image sliced into A4 pages."""

from __future__ import annotations

import datetime
import io
import logging
import math
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

import config
from renderer import render_invoice

logger = logging.getLogger(__name__)

# Remaining heights below this (in points) are float noise, not content
EPSILON = 1e-6


class ExportError(RuntimeError):
    """The export was aborted; no file has been written."""


@dataclass(frozen=True)
class Band:
    """One vertical slice of the captured image, printed as one page.

    `top`/`bottom` are source pixel rows (bottom exclusive); `height` is the
    printed height in points.
    """
    index: int
    top: int
    bottom: int
    height: float


def plan_bands(width: int, height: int, page_size=A4, margin: float = 0) -> list[Band]:
    """Split a width x height capture into consecutive page-sized bands.

    The capture is scaled so its width fills the usable page width. A
    remaining-height accumulator consumes one usable page height per page
    until nothing is left, so a capture 3.2 pages tall yields 4 bands, the
    last one shorter. Band edges are the floored page offsets shared by
    neighbouring bands, so the bands cover [0, height) with no gap and no overlap.
    """
    if width <= 0 or height <= 0:
        raise ExportError(f"Captured document is empty ({width}x{height})")
    page_width, page_height = page_size
    usable_width = page_width - 2 * margin
    usable_height = page_height - 2 * margin
    if usable_width <= 0 or usable_height <= 0:
        raise ExportError("Page margins leave no printable area")

    scale = usable_width / width
    scaled_height = height * scale

    def edge(page: int) -> int:
        return min(height, math.floor(page * usable_height / scale))

    bands = []
    page = 0
    height_left = scaled_height
    while height_left > EPSILON:
        top = edge(page)
        last = height_left <= usable_height + EPSILON
        bottom = height if last else edge(page + 1)
        bands.append(Band(index=len(bands), top=top, bottom=bottom, height=(bottom - top) * scale))
        page += 1
        height_left -= usable_height
    return bands


def slice_bands(image, bands: list[Band]) -> list:
    """Crop every band out of the single captured image."""
    return [image.crop((0, band.top, image.width, band.bottom)) for band in bands]


class PaginatedPDF:
    def __init__(self, image, page_size=A4, margin: float = 0, title: str = ""):
        self.image = image
        self.page_size = page_size
        self.margin = margin
        self.title = title
        self.bands = plan_bands(image.width, image.height, page_size, margin)

    def build(self) -> bytes:
        """Assemble every page in memory and return the finished PDF."""
        page_width, page_height = self.page_size
        usable_width = page_width - 2 * self.margin

        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.page_size)
        if self.title:
            pdf.setTitle(self.title)
        for band, piece in zip(self.bands, slice_bands(self.image, self.bands)):
            # Each band hangs from the top margin; the last page may be short
            y = page_height - self.margin - band.height
            pdf.drawImage(ImageReader(piece), self.margin, y, width=usable_width, height=band.height)
            pdf.showPage()
        pdf.save()
        return buffer.getvalue()


def pdf_filename(invoice: dict, today: datetime.date | None = None) -> str:
    """invoice-<number>-<client-name>-<YYYY-MM-DD>.pdf, safe for any filesystem."""
    number = invoice.get("number") or "unknown"
    number = re.sub(r"[^a-zA-Z0-9_-]", "-", number)
    client_name = (invoice.get("client") or {}).get("name") or "customer"
    clean_client = re.sub(r"[^a-zA-Z0-9]", "-", client_name).lower()
    day = (today or datetime.date.today()).isoformat()
    return f"invoice-{number}-{clean_client}-{day}.pdf"


@dataclass
class ExportResult:
    filename: str
    data: bytes = field(repr=False)
    page_count: int


async def export_invoice(invoice: dict, registry, rasterizer, scale: float | None = None,
                         page_size=A4, margin: float = 0,
                         today: datetime.date | None = None) -> ExportResult:
    """Render, capture once, slice and assemble an invoice PDF in memory."""
    descriptor = render_invoice(invoice, registry)
    scale = scale or config.EXPORT_SCALE
    try:
        image = await rasterizer.rasterize(descriptor, scale=scale, cross_origin_images=True)
    except ExportError:
        logger.exception(f"Export of invoice {invoice.get('number')} aborted")
        raise
    except Exception as e:
        logger.exception(f"Export of invoice {invoice.get('number')} aborted")
        raise ExportError(f"Rasterization failed: {e}") from e

    if image is None or not image.width or not image.height:
        raise ExportError("Captured document is empty")

    document = PaginatedPDF(image, page_size, margin, title=f"Invoice {invoice.get('number', '')}")
    data = document.build()
    filename = pdf_filename(invoice, today)
    logger.info(f"Exported {filename} ({len(document.bands)} pages, template {descriptor['template_id']})")
    return ExportResult(filename=filename, data=data, page_count=len(document.bands))


def save_export(result: ExportResult, directory: str | Path | None = None) -> Path:
    """Write a finished export in one step; the target never holds a partial file."""
    directory = Path(directory or config.EXPORT_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / result.filename
    fd, tmp_name = tempfile.mkstemp(dir=directory, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(result.data)
        os.replace(tmp_name, target)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info(f"PDF saved to {target}")
    return target
