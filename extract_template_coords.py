import argparse
import json
from pathlib import Path

import fitz

from layout import DEFAULT_LAYOUT_PATH, Layout, load_layout


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inspect the certificate template to calibrate data/layout.json."
    )
    parser.add_argument("--template", required=True, help="Path to template PDF.")
    parser.add_argument("--page", type=int, default=0, help="Zero-based page index.")
    parser.add_argument(
        "--contains",
        help="Filter spans containing this text (case-insensitive).",
    )
    parser.add_argument(
        "--min-len",
        type=int,
        default=1,
        help="Minimum text length to include.",
    )
    parser.add_argument(
        "--max-items",
        type=int,
        default=0,
        help="Limit number of items (0 = no limit).",
    )
    parser.add_argument(
        "--output-json",
        help="Optional JSON output path for extracted spans.",
    )
    parser.add_argument(
        "--layout",
        default=str(DEFAULT_LAYOUT_PATH),
        help="Layout JSON used with --annotate-layout.",
    )
    parser.add_argument(
        "--annotate-layout",
        help="Optional output PDF with a crosshair at every layout anchor.",
    )
    return parser.parse_args(argv)


def to_bottom_left_bbox(bbox: list[float], page_h: float) -> list[float]:
    x0, y0, x1, y1 = bbox
    return [x0, page_h - y1, x1, page_h - y0]


def to_bottom_left_point(x: float, y: float, page_h: float) -> list[float]:
    return [x, page_h - y]


def iter_spans(page: fitz.Page):
    data = page.get_text("dict")
    for block in data.get("blocks", []):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                yield span


def extract_spans(
    template_bytes: bytes,
    page_index: int = 0,
    contains: str | None = None,
    min_len: int = 1,
    max_items: int = 0,
) -> list[dict]:
    """Text spans of one template page, with coordinates in PDF (bottom-left) space."""
    doc = fitz.open(stream=template_bytes, filetype="pdf")
    if page_index < 0 or page_index >= len(doc):
        raise IndexError(f"Page {page_index} out of range. PDF has {len(doc)} page(s).")

    page = doc[page_index]
    page_h = float(page.rect.height)
    needle = contains.lower() if contains else None

    items: list[dict] = []
    for span in iter_spans(page):
        text = (span.get("text") or "").strip()
        if len(text) < min_len:
            continue
        if needle and needle not in text.lower():
            continue

        bbox_top_left = list(span.get("bbox", [0, 0, 0, 0]))
        origin = span.get("origin")
        items.append(
            {
                "text": text,
                "font": span.get("font"),
                "size": span.get("size"),
                "bbox_bottom_left": to_bottom_left_bbox(bbox_top_left, page_h),
                "origin_bottom_left": (
                    to_bottom_left_point(origin[0], origin[1], page_h) if origin else None
                ),
            }
        )

        if max_items and len(items) >= max_items:
            break
    return items


def layout_anchors(layout: Layout, page_w: float) -> dict[str, tuple[float, float]]:
    anchors = {name: (point.x, point.y) for name, point in layout.fields}
    for code in layout.reason_codes():
        anchors[f"reason:{code}"] = (layout.checkmark.x, layout.reason_y(code))
    stamp = layout.qr.stamp
    anchors["qr"] = (page_w - stamp.right_offset, stamp.y)
    return anchors


def annotate_layout(template_bytes: bytes, layout: Layout) -> bytes:
    """Copy of the template with a labelled red crosshair at each layout anchor on page 1."""
    doc = fitz.open(stream=template_bytes, filetype="pdf")
    page = doc[0]
    page_w = float(page.rect.width)
    page_h = float(page.rect.height)

    for label, (x, y) in layout_anchors(layout, page_w).items():
        top_y = page_h - y
        page.draw_line(fitz.Point(x - 6, top_y), fitz.Point(x + 6, top_y), color=(1, 0, 0), width=0.7)
        page.draw_line(fitz.Point(x, top_y - 6), fitz.Point(x, top_y + 6), color=(1, 0, 0), width=0.7)
        page.insert_text(fitz.Point(x + 8, top_y - 2), label, fontsize=6, color=(1, 0, 0))

    stamp = layout.qr.stamp
    qr_x = page_w - stamp.right_offset
    page.draw_rect(
        fitz.Rect(qr_x, page_h - stamp.y - stamp.size, qr_x + stamp.size, page_h - stamp.y),
        color=(1, 0, 0),
        width=0.7,
    )
    return doc.tobytes()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    template_path = Path(args.template)
    template_bytes = template_path.read_bytes()

    items = extract_spans(
        template_bytes,
        page_index=args.page,
        contains=args.contains,
        min_len=args.min_len,
        max_items=args.max_items,
    )

    print(f"Template: {template_path}")
    print(f"Page: {args.page}")
    print(f"Matches: {len(items)}")
    for idx, item in enumerate(items, start=1):
        bbox = item["bbox_bottom_left"]
        print(
            f"{idx:03d} | '{item['text']}' | font={item['font']} size={item['size']:.1f} | "
            f"bbox_bl=({bbox[0]:.2f},{bbox[1]:.2f},{bbox[2]:.2f},{bbox[3]:.2f})"
        )

    if args.output_json:
        output_path = Path(args.output_json)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "template": str(template_path),
            "page": args.page,
            "items": items,
        }
        output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Wrote JSON: {output_path}")

    if args.annotate_layout:
        annot_path = Path(args.annotate_layout)
        annot_path.parent.mkdir(parents=True, exist_ok=True)
        annot_path.write_bytes(annotate_layout(template_bytes, load_layout(Path(args.layout))))
        print(f"Wrote annotated PDF: {annot_path}")


if __name__ == "__main__":
    main()
