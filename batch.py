import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from certificate_overlay import render_certificate
from errors import CertificateError, DeliveryError
from layout import Layout
from profiles import Profile, reasons_label
from verification import format_date, format_time

log = logging.getLogger("certificate.batch")

DEFAULT_TIMEOUT = 60.0

Writer = Callable[[Path, str, bytes], Path]
Deliverer = Callable[[Profile, Path], Awaitable[None]]


@dataclass
class CertificateResult:
    profile: Profile
    filename: str
    path: Path | None = None
    error: Exception | None = None
    delivered: bool | None = None
    delivery_error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.path is not None


def certificate_filename(lastname: str, time: str, reasons: list[str]) -> str:
    safe_lastname = lastname.replace("/", "_").replace("\\", "_")
    return f"certificate-{safe_lastname}-{time}-{reasons_label(reasons)}.pdf"


def _dedupe(filename: str, used: set[str]) -> str:
    candidate = filename
    counter = 2
    stem = filename[: -len(".pdf")]
    while candidate in used:
        candidate = f"{stem}-{counter}.pdf"
        counter += 1
    used.add(candidate)
    return candidate


def write_certificate(output_dir: Path, filename: str, data: bytes) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / filename
    with output_path.open("wb") as f:
        f.write(data)
    return output_path


async def run_batch(
    profiles: list[Profile],
    reasons: list[str],
    template_bytes: bytes,
    layout: Layout,
    output_dir: Path,
    *,
    date: str | None = None,
    time: str | None = None,
    clock: Callable[[], datetime] = datetime.now,
    writer: Writer = write_certificate,
    deliver: Deliverer | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[CertificateResult]:
    """Render, write and optionally email one certificate per profile.

    Profiles are handled one after the other in input order. A failure for one
    profile is recorded on its result and the batch moves on to the next one.
    Delivery failures never change whether the file counts as written.
    """
    now = clock()
    going_out_date = date or format_date(now)
    going_out_time = time or format_time(now)

    results: list[CertificateResult] = []
    used_names: set[str] = set()

    log.info("Generating %d certificate(s) for reasons: %s", len(profiles), reasons_label(reasons))
    for idx, profile in enumerate(profiles, start=1):
        filename = _dedupe(certificate_filename(profile.lastname, going_out_time, reasons), used_names)
        result = CertificateResult(profile=profile, filename=filename)
        results.append(result)

        try:
            dated = profile.with_departure(going_out_date, going_out_time)
        except ValueError as exc:
            log.error("[%d/%d] %s: %s", idx, len(profiles), filename, exc)
            result.error = exc
            continue
        result.profile = dated

        try:
            pdf_bytes = await asyncio.wait_for(
                render_certificate(dated, reasons, template_bytes, layout, clock()),
                timeout,
            )
        except CertificateError as exc:
            log.error("[%d/%d] %s: %s", idx, len(profiles), filename, exc)
            result.error = exc
            continue
        except asyncio.TimeoutError as exc:
            log.error("[%d/%d] %s: rendering timed out after %.0fs", idx, len(profiles), filename, timeout)
            result.error = exc
            continue

        try:
            result.path = await asyncio.to_thread(writer, output_dir, filename, pdf_bytes)
        except OSError as exc:
            log.error("[%d/%d] Cannot write %s: %s", idx, len(profiles), filename, exc)
            result.error = exc
            continue
        log.info("[%d/%d] The certificate is ready: %s", idx, len(profiles), result.path)

        if dated.email and deliver is not None:
            await _deliver(result, deliver, timeout)

    return results


async def _deliver(result: CertificateResult, deliver: Deliverer, timeout: float) -> None:
    profile = result.profile
    try:
        await asyncio.wait_for(deliver(profile, result.path), timeout)
    except (DeliveryError, asyncio.TimeoutError) as exc:
        log.error("Could not send %s to %s: %s", result.filename, profile.email, str(exc) or "timed out")
        result.delivered = False
        result.delivery_error = exc
        return
    log.info("The certificate %s was sent to %s", result.path, profile.email)
    result.delivered = True
