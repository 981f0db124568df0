import json
import logging
import re
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from errors import ProfileInputError

log = logging.getLogger("certificate.profiles")


class Reason(str, Enum):
    TRAVAIL = "travail"
    ACHATS = "achats"
    SANTE = "sante"
    FAMILLE = "famille"
    HANDICAP = "handicap"
    SPORT_ANIMAUX = "sport_animaux"
    CONVOCATION = "convocation"
    MISSIONS = "missions"
    ENFANTS = "enfants"


REASON_SEPARATOR = ", "

_REASON_TOKEN_RE = re.compile(r"^[a-z_]+(-[a-z_]+)*$")

# Assigned by the batch for every certificate, never read from input.
DEPARTURE_FIELDS = ("datesortie", "heuresortie")


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    lastname: str
    firstname: str
    birthday: str
    placeofbirth: str
    address: str
    zipcode: str
    city: str
    email: str | None = None
    datesortie: str | None = None
    heuresortie: str | None = None

    def with_departure(self, date: str, time: str) -> "Profile":
        if self.datesortie is not None or self.heuresortie is not None:
            raise ValueError(f"Departure already assigned for profile '{self.lastname}'.")
        return self.model_copy(update={"datesortie": date, "heuresortie": time})


def parse_reasons(token: str) -> list[str]:
    """Split a hyphen-joined selection (``travail-achats``) into reason codes.

    Codes are not checked against :class:`Reason` here; the layout lookup
    rejects unknown codes when a certificate is rendered.
    """
    cleaned = token.strip()
    if not _REASON_TOKEN_RE.match(cleaned):
        raise ValueError(f"Invalid reason selection: '{token}'.")
    return cleaned.split("-")


def reasons_label(reasons: list[str]) -> str:
    return REASON_SEPARATOR.join(reasons)


def load_profiles(path: Path) -> list[Profile]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ProfileInputError(f"Cannot read profiles file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ProfileInputError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(raw, list):
        raise ProfileInputError(f"{path} must contain a JSON array of profiles.")

    profiles: list[Profile] = []
    for idx, item in enumerate(raw):
        if isinstance(item, dict):
            ignored = [key for key in DEPARTURE_FIELDS if item.pop(key, None) is not None]
            if ignored:
                log.warning("Profile #%d in %s: ignoring %s from input.", idx + 1, path, ", ".join(ignored))
        try:
            profiles.append(Profile.model_validate(item))
        except ValidationError as exc:
            raise ProfileInputError(f"Profile #{idx + 1} in {path} is invalid: {exc}") from exc
    return profiles
