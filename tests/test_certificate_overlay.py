import io
import warnings

import fitz
import pytest
from pypdf import PdfReader

from certificate_overlay import (
    KEYWORDS,
    build_certificate,
    build_metadata,
    certificate_title,
    render_certificate,
    resolve_font_name,
)
from errors import ImageEncodingError, RenderError, UnknownReasonError

from conftest import FIXED_NOW, make_template


def checkmark_baselines(pdf_bytes: bytes) -> list[float]:
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    page = doc[0]
    page_h = page.rect.height
    ys = []
    for block in page.get_text("dict")["blocks"]:
        for line in block.get("lines", []):
            for span in line["spans"]:
                if span["text"].strip() == "x":
                    ys.append(round(page_h - span["origin"][1]))
    return sorted(ys, reverse=True)


def test_certificate_title_uses_calendar_month_and_day():
    assert certificate_title(FIXED_NOW) == "attestation-2020-04-01_12-00"


def test_metadata():
    meta = build_metadata(FIXED_NOW)
    assert meta["/Subject"] == "Attestation de déplacement dérogatoire"
    assert meta["/Producer"] == "DNUM/SDIT"
    assert meta["/Author"] == "Ministère de l'intérieur"
    assert meta["/Keywords"].split(", ") == KEYWORDS


def test_resolve_font_name_falls_back():
    assert resolve_font_name("Helvetica") == "Helvetica"
    assert resolve_font_name("NoSuchFont") == "Helvetica"


@pytest.mark.asyncio
async def test_render_two_pages_with_qr_on_each(dated_profile, template_bytes, layout):
    pdf_bytes = await render_certificate(dated_profile, ["travail", "achats"], template_bytes, layout, FIXED_NOW)

    reader = PdfReader(io.BytesIO(pdf_bytes))
    assert len(reader.pages) == 2
    assert reader.metadata.title == "attestation-2020-04-01_12-00"
    assert reader.metadata.author == "Ministère de l'intérieur"

    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    assert len(doc[0].get_images()) == 1
    assert len(doc[1].get_images()) == 1
    assert doc[1].rect == doc[0].rect

    text = doc[0].get_text()
    assert "Jean Dupont" in text
    assert "1 rue A 75000 Paris" in text
    assert "12h00" in text
    # template labels survive the merge
    assert "Mme/M. :" in text


@pytest.mark.asyncio
async def test_render_draws_one_checkmark_per_reason(dated_profile, template_bytes, layout):
    pdf_bytes = await render_certificate(dated_profile, ["travail", "famille"], template_bytes, layout, FIXED_NOW)
    assert checkmark_baselines(pdf_bytes) == [553, 410]


def test_qr_positions(dated_profile, template_bytes, layout):
    pdf_bytes = build_certificate(dated_profile, ["sante"], template_bytes, layout, FIXED_NOW)
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")

    first = doc[0]
    [stamp] = first.get_image_rects(first.get_images()[0][0])
    assert round(stamp.width) == 92
    assert round(stamp.x0) == round(first.rect.width - 156)
    assert round(first.rect.height - stamp.y1) == 25

    second = doc[1]
    [big] = second.get_image_rects(second.get_images()[0][0])
    assert round(big.width) == 300
    assert round(big.x0) == 50


def test_extra_template_pages_are_kept(dated_profile, layout):
    from reportlab.lib.pagesizes import A4
    from reportlab.pdfgen import canvas

    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=A4)
    c.drawString(47, 702, "page one")
    c.showPage()
    c.drawString(47, 702, "page two")
    c.showPage()
    c.save()

    pdf_bytes = build_certificate(dated_profile, ["sante"], packet.getvalue(), layout, FIXED_NOW)
    assert len(PdfReader(io.BytesIO(pdf_bytes)).pages) == 3


@pytest.mark.asyncio
async def test_unknown_reason_fails_render(dated_profile, template_bytes, layout):
    with pytest.raises(UnknownReasonError):
        await render_certificate(dated_profile, ["travail", "vacances"], template_bytes, layout, FIXED_NOW)


@pytest.mark.asyncio
async def test_unreadable_template(dated_profile, layout):
    with pytest.raises(RenderError):
        await render_certificate(dated_profile, ["travail"], b"not a pdf", layout, FIXED_NOW)


@pytest.mark.asyncio
async def test_encoding_failure_is_reported(dated_profile, template_bytes, layout):
    huge = dated_profile.model_copy(update={"address": "a" * 4000})
    with pytest.raises(ImageEncodingError):
        await render_certificate(huge, ["travail"], template_bytes, layout, FIXED_NOW)


def test_shipped_template_renders(dated_profile, layout):
    from layout import DEFAULT_LAYOUT_PATH

    template = (DEFAULT_LAYOUT_PATH.parent / "certificate.pdf").read_bytes()
    pdf_bytes = build_certificate(dated_profile, ["travail"], template, layout, FIXED_NOW)
    assert len(PdfReader(io.BytesIO(pdf_bytes)).pages) == 2


def test_make_template_has_labels():
    assert b"%PDF" in make_template()[:8]


def test_overlay_is_merged_onto_a_writer_page(dated_profile, template_bytes, layout):
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message=".*not assigned to a writer.*")
        pdf_bytes = build_certificate(dated_profile, ["travail"], template_bytes, layout, FIXED_NOW)
    assert checkmark_baselines(pdf_bytes) == [553]
