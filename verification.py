from datetime import datetime

import qrcode
from PIL import Image
from qrcode.exceptions import DataOverflowError

from errors import ImageEncodingError
from profiles import Profile, reasons_label


def format_date(moment: datetime) -> str:
    return moment.strftime("%d/%m/%Y")


def format_time(moment: datetime) -> str:
    return moment.strftime("%Hh%M")


def format_payload(profile: Profile, reasons: list[str], generated_at: datetime) -> str:
    """Build the text encoded in the verification QR code.

    Field order is fixed so that identical inputs always give identical text.
    Free-text fields are embedded as-is.
    """
    lines = [
        f"Cree le: {format_date(generated_at)} a {format_time(generated_at)}",
        f"Nom: {profile.lastname}",
        f"Prenom: {profile.firstname}",
        f"Naissance: {profile.birthday} a {profile.placeofbirth}",
        f"Adresse: {profile.address} {profile.zipcode} {profile.city}",
        f"Sortie: {profile.datesortie} a {profile.heuresortie}",
        f"Motifs: {reasons_label(reasons)}",
    ]
    return ";\n ".join(lines)


def encode_qr(text: str) -> Image.Image:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=1,
    )
    try:
        qr.add_data(text)
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as exc:
        raise ImageEncodingError(f"Cannot encode verification payload: {exc}") from exc
    return qr.make_image(fill_color="black", back_color="white").convert("RGB")
