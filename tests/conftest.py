"""Shared fixtures: a small A4 template, the shipped layout and sample profiles."""

import io
from datetime import datetime

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from layout import load_layout
from profiles import Profile

FIXED_NOW = datetime(2020, 4, 1, 12, 0)


def make_template(labels: dict[str, tuple[float, float]] | None = None) -> bytes:
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=A4)
    c.setFont("Helvetica", 11)
    for text, (x, y) in (labels or {"Mme/M. :": (47, 702), "Fait a :": (47, 76)}).items():
        c.drawString(x, y, text)
    c.showPage()
    c.save()
    return packet.getvalue()


@pytest.fixture
def template_bytes() -> bytes:
    return make_template()


@pytest.fixture
def layout():
    return load_layout()


@pytest.fixture
def profile() -> Profile:
    return Profile(
        lastname="Dupont",
        firstname="Jean",
        birthday="01/01/1980",
        placeofbirth="Paris",
        address="1 rue A",
        zipcode="75000",
        city="Paris",
    )


@pytest.fixture
def dated_profile(profile: Profile) -> Profile:
    return profile.with_departure("01/04/2020", "12h00")
