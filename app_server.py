import asyncio
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from urllib.parse import quote

# load_dotenv() runs before the routes are used so CERTIFICATE_JWT_SECRET and
# the CERTIFICATE_* overrides are visible to auth.py and config.py.
from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from auth import get_current_user
from batch import certificate_filename
from certificate_overlay import render_certificate
from config import load_config
from errors import CertificateError, UnknownReasonError
from layout import Layout, load_layout
from profiles import Profile, parse_reasons
from verification import format_date, format_time

app = FastAPI(title="Certificate API")


@dataclass(frozen=True)
class CertificateAssets:
    template_bytes: bytes
    layout: Layout
    timeout: float


@lru_cache(maxsize=1)
def get_assets() -> CertificateAssets:
    """Template and layout, read once per process."""
    cfg = load_config()
    return CertificateAssets(
        template_bytes=cfg.template_path.read_bytes(),
        layout=load_layout(cfg.layout_path),
        timeout=cfg.timeout,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "message": "Request validation failed.",
            "detail": exc.errors(),
        },
    )


class CertificateRequest(BaseModel):
    profile: Profile
    reasons: str = Field(examples=["travail-achats"])
    date: str | None = Field(default=None, pattern=r"^\d{2}/\d{2}/\d{4}$")
    time: str | None = Field(default=None, pattern=r"^\d{2}h\d{2}$")


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/reasons")
def list_reasons(assets: CertificateAssets = Depends(get_assets)) -> dict[str, list[str]]:
    return {"reasons": assets.layout.reason_codes()}


@app.post("/api/certificate")
async def generate_certificate(
    request: CertificateRequest,
    assets: CertificateAssets = Depends(get_assets),
    claims: dict = Depends(get_current_user),
) -> Response:
    try:
        reasons = parse_reasons(request.reasons)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    now = datetime.now()
    going_out_time = request.time or format_time(now)
    try:
        profile = request.profile.with_departure(request.date or format_date(now), going_out_time)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        pdf_bytes = await asyncio.wait_for(
            render_certificate(profile, reasons, assets.template_bytes, assets.layout, now),
            assets.timeout,
        )
    except asyncio.TimeoutError as exc:
        raise HTTPException(status_code=504, detail="Certificate generation timed out.") from exc
    except UnknownReasonError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CertificateError as exc:
        raise HTTPException(
            status_code=500,
            detail={"message": "Certificate generation failed.", "error": str(exc)},
        ) from exc

    filename = certificate_filename(profile.lastname, going_out_time, reasons)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
