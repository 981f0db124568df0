import asyncio
import io
import logging
from datetime import datetime

from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from errors import CertificateError, RenderError
from layout import Layout, place_fields
from profiles import Profile
from verification import encode_qr, format_payload


log = logging.getLogger("certificate.overlay")

_BASE14_FONTS = {
    "Courier",
    "Courier-Bold",
    "Courier-Oblique",
    "Courier-BoldOblique",
    "Helvetica",
    "Helvetica-Bold",
    "Helvetica-Oblique",
    "Helvetica-BoldOblique",
    "Times-Roman",
    "Times-Bold",
    "Times-Italic",
    "Times-BoldItalic",
    "Symbol",
    "ZapfDingbats",
}

SUBJECT = "Attestation de déplacement dérogatoire"
KEYWORDS = [
    "covid19",
    "covid-19",
    "attestation",
    "déclaration",
    "déplacement",
    "officielle",
    "gouvernement",
]
PRODUCER = "DNUM/SDIT"
AUTHOR = "Ministère de l'intérieur"


def _font_is_available(font_name: str) -> bool:
    if font_name in _BASE14_FONTS:
        return True
    try:
        pdfmetrics.getFont(font_name)
        return True
    except Exception:
        return False


def resolve_font_name(font_name: str, fallback_font: str = "Helvetica") -> str:
    if _font_is_available(font_name):
        return font_name
    log.warning("Font '%s' is unavailable. Falling back to '%s'.", font_name, fallback_font)
    return fallback_font


def certificate_title(generated_at: datetime) -> str:
    return generated_at.strftime("attestation-%Y-%m-%d_%H-%M")


def build_metadata(generated_at: datetime) -> dict[str, str]:
    return {
        "/Title": certificate_title(generated_at),
        "/Subject": SUBJECT,
        "/Keywords": ", ".join(KEYWORDS),
        "/Producer": PRODUCER,
        "/Creator": "",
        "/Author": AUTHOR,
    }


def draw_overlay(
    page_w: float,
    page_h: float,
    profile: Profile,
    reasons: list[str],
    layout: Layout,
    generated_at: datetime,
) -> tuple[bytes, Image.Image]:
    """Draw the first-page overlay: profile fields, checkmarks and the QR stamp.

    Returns the one-page overlay PDF and the QR image, which is reused for the
    verification page.
    """
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=(page_w, page_h))

    place_fields(c, profile, reasons, layout)

    qr_image = encode_qr(format_payload(profile, reasons, generated_at))
    stamp = layout.qr.stamp
    c.drawImage(
        ImageReader(qr_image),
        page_w - stamp.right_offset,
        stamp.y,
        width=stamp.size,
        height=stamp.size,
    )

    c.showPage()
    c.save()
    packet.seek(0)
    return packet.read(), qr_image


def draw_verification_page(page_w: float, page_h: float, layout: Layout, qr_image: Image.Image) -> bytes:
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=(page_w, page_h))
    placement = layout.qr.page
    c.drawImage(
        ImageReader(qr_image),
        placement.x,
        page_h - placement.top_offset,
        width=placement.size,
        height=placement.size,
    )
    c.showPage()
    c.save()
    packet.seek(0)
    return packet.read()


def build_certificate(
    profile: Profile,
    reasons: list[str],
    template_bytes: bytes,
    layout: Layout,
    generated_at: datetime,
) -> bytes:
    try:
        writer = PdfWriter(clone_from=PdfReader(io.BytesIO(template_bytes)))
    except Exception as exc:
        raise RenderError(f"Cannot read certificate template: {exc}") from exc
    if len(writer.pages) == 0:
        raise RenderError("Certificate template has no pages.")

    font_name = resolve_font_name(layout.font)
    if font_name != layout.font:
        layout = layout.model_copy(update={"font": font_name})

    # merge_page needs a page owned by the writer.
    first = writer.pages[0]
    page_w = float(first.mediabox.width)
    page_h = float(first.mediabox.height)

    overlay_bytes, qr_image = draw_overlay(page_w, page_h, profile, reasons, layout, generated_at)
    first.merge_page(PdfReader(io.BytesIO(overlay_bytes)).pages[0])

    verification_bytes = draw_verification_page(page_w, page_h, layout, qr_image)
    writer.add_page(PdfReader(io.BytesIO(verification_bytes)).pages[0])
    writer.add_metadata(build_metadata(generated_at))

    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


async def render_certificate(
    profile: Profile,
    reasons: list[str],
    template_bytes: bytes,
    layout: Layout,
    generated_at: datetime | None = None,
) -> bytes:
    """Render one certificate PDF off the event loop.

    Any failure is raised as a :class:`CertificateError` so callers can skip
    this profile and carry on.
    """
    moment = generated_at or datetime.now()
    try:
        return await asyncio.to_thread(
            build_certificate, profile, reasons, template_bytes, layout, moment
        )
    except CertificateError:
        raise
    except Exception as exc:
        raise RenderError(f"Rendering failed for '{profile.lastname}': {exc}") from exc
