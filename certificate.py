import argparse
import asyncio
import logging
import re
from pathlib import Path

from batch import run_batch
from config import load_config
from errors import CertificateError
from layout import load_layout
from logger import setup_logging
from mailer import make_deliverer
from profiles import Reason, load_profiles, parse_reasons

__version__ = "0.1.1"

log = logging.getLogger("certificate.cli")

_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
_TIME_RE = re.compile(r"^\d{2}h\d{2}$")


def _going_out_date(value: str) -> str:
    if not _DATE_RE.match(value):
        raise argparse.ArgumentTypeError(f"expected dd/mm/yyyy, got '{value}'")
    return value


def _going_out_time(value: str) -> str:
    if not _TIME_RE.match(value):
        raise argparse.ArgumentTypeError(f"expected HHhMM, got '{value}'")
    return value


def _reasons(value: str) -> list[str]:
    try:
        return parse_reasons(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate travel-exemption certificates for every profile in a JSON file.",
        epilog="Possible reasons: " + ", ".join(reason.value for reason in Reason),
    )
    parser.add_argument(
        "reasons",
        type=_reasons,
        help="Hyphen-joined reasons, e.g. travail-achats.",
    )
    parser.add_argument(
        "profiles",
        type=Path,
        help="Path to the JSON file that contains an array of profiles.",
    )
    parser.add_argument("--time", type=_going_out_time, help="Going out time, format: HHhMM.")
    parser.add_argument("--date", type=_going_out_date, help="Going out date, format: dd/mm/yyyy.")
    parser.add_argument("--config", help="Path to the config file.")
    parser.add_argument("--output", help="Output directory of the certificates.")
    parser.add_argument("--template", help="Template PDF (overrides the config).")
    parser.add_argument("--layout", help="Layout JSON (overrides the config).")
    parser.add_argument("--timeout", type=float, help="Per-certificate timeout in seconds.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = load_config(args.config)
    except CertificateError as exc:
        setup_logging(args.debug)
        log.error("%s", exc)
        return 1
    setup_logging(args.debug or cfg.debug, cfg.log_dir)

    template_path = Path(args.template) if args.template else cfg.template_path
    layout_path = Path(args.layout) if args.layout else cfg.layout_path
    output_dir = Path(args.output) if args.output else cfg.resolved_output_dir
    timeout = args.timeout if args.timeout is not None else cfg.timeout

    try:
        profiles = load_profiles(args.profiles)
        layout = load_layout(layout_path)
        template_bytes = template_path.read_bytes()
    except CertificateError as exc:
        log.error("%s", exc)
        return 1
    except OSError as exc:
        log.error("Cannot read template %s: %s", template_path, exc)
        return 1

    deliver = make_deliverer(cfg.email) if cfg.email is not None else None
    if deliver is None and any(profile.email for profile in profiles):
        log.warning("Some profiles have an email address but no email settings are configured.")

    results = asyncio.run(
        run_batch(
            profiles,
            args.reasons,
            template_bytes,
            layout,
            output_dir,
            date=args.date,
            time=args.time,
            deliver=deliver,
            timeout=timeout,
        )
    )

    failed = [result for result in results if not result.ok]
    print(f"Done! Generated {len(results) - len(failed)}/{len(results)} certificate(s) in {output_dir}")
    for result in failed:
        print(f"  [FAIL] {result.filename}: {result.error}")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
