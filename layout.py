"""Field positions for the certificate template and the code that draws them.

Coordinates are in PDF points with a bottom-left origin and are calibrated
against the printed labels of ``data/certificate.pdf`` (see
``extract_template_coords.py``). They live in ``data/layout.json`` so a new
template revision only needs a new layout file.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError, model_validator
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from errors import ConfigError, UnknownReasonError
from profiles import Profile, Reason

log = logging.getLogger("certificate.layout")

DEFAULT_LAYOUT_PATH = Path(__file__).resolve().parent / "data" / "layout.json"

CITY_OVERFLOW_WARNING = (
    "Le nom de la ville risque de ne pas être affiché correctement en raison de sa longueur. "
    "Essayez d'utiliser des abréviations (\"Saint\" en \"St.\" par exemple) quand cela est possible."
)


class Point(BaseModel):
    x: float
    y: float


class FieldPositions(BaseModel):
    fullname: Point
    birthday: Point
    placeofbirth: Point
    address: Point
    city: Point
    datesortie: Point
    heuresortie: Point


class Checkmark(BaseModel):
    text: str = "x"
    x: float
    size: float = 12


class FontFit(BaseModel):
    max_width: float
    min_size: int
    default_size: int

    @model_validator(mode="after")
    def _check_bounds(self) -> "FontFit":
        if self.min_size <= 0 or self.min_size > self.default_size:
            raise ValueError("city_fit requires 0 < min_size <= default_size")
        return self


class StampPlacement(BaseModel):
    right_offset: float
    y: float
    size: float


class PagePlacement(BaseModel):
    x: float
    top_offset: float
    size: float


class QrPlacements(BaseModel):
    stamp: StampPlacement
    page: PagePlacement


class Layout(BaseModel):
    version: int
    font: str = "Helvetica"
    default_size: float = 11
    fields: FieldPositions
    checkmark: Checkmark
    reasons: dict[Reason, float]
    city_fit: FontFit
    qr: QrPlacements

    @model_validator(mode="after")
    def _check_reasons(self) -> "Layout":
        missing = [reason.value for reason in Reason if reason not in self.reasons]
        if missing:
            raise ValueError(f"reasons table is missing: {', '.join(missing)}")
        return self

    def reason_y(self, code: str) -> float:
        try:
            return self.reasons[Reason(code)]
        except (ValueError, KeyError):
            raise UnknownReasonError(code) from None

    def reason_codes(self) -> list[str]:
        return [reason.value for reason in self.reasons]


def load_layout(path: Path = DEFAULT_LAYOUT_PATH) -> Layout:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Layout.model_validate(raw)
    except OSError as exc:
        raise ConfigError(f"Cannot read layout file {path}: {exc}") from exc
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"Invalid layout file {path}: {exc}") from exc


def ideal_font_size(
    text: str,
    font_name: str,
    max_width: float,
    min_size: int,
    default_size: int,
) -> int | None:
    """Largest size in ``[min_size, default_size]`` at which *text* fits.

    Shrinks one point at a time from ``default_size``. Returns ``None`` when
    the text is still wider than ``max_width`` at ``min_size``.
    """
    for size in range(default_size, min_size - 1, -1):
        if pdfmetrics.stringWidth(text, font_name, size) <= max_width:
            return size
    return None


def _draw_text(c: canvas.Canvas, font_name: str, text: str, pos: Point, size: float) -> None:
    c.setFont(font_name, size)
    c.drawString(pos.x, pos.y, text)


def place_fields(c: canvas.Canvas, profile: Profile, reasons: list[str], layout: Layout) -> int:
    """Draw the profile fields and reason checkmarks on the first page.

    Returns the font size used for the city.
    """
    # Resolve every reason first so an unknown code leaves the page untouched.
    reason_ys = [layout.reason_y(reason) for reason in reasons]

    font = layout.font
    size = layout.default_size
    fields = layout.fields

    _draw_text(c, font, f"{profile.firstname} {profile.lastname}", fields.fullname, size)
    _draw_text(c, font, profile.birthday, fields.birthday, size)
    _draw_text(c, font, profile.placeofbirth, fields.placeofbirth, size)
    _draw_text(c, font, f"{profile.address} {profile.zipcode} {profile.city}", fields.address, size)

    mark = layout.checkmark
    for y in reason_ys:
        _draw_text(c, font, mark.text, Point(x=mark.x, y=y), mark.size)

    fit = layout.city_fit
    city_size = ideal_font_size(profile.city, font, fit.max_width, fit.min_size, fit.default_size)
    if city_size is None:
        log.warning(CITY_OVERFLOW_WARNING)
        city_size = fit.min_size

    _draw_text(c, font, profile.city, fields.city, city_size)
    _draw_text(c, font, profile.datesortie or "", fields.datesortie, size)
    _draw_text(c, font, profile.heuresortie or "", fields.heuresortie, size)
    return city_size
