"""Export and share transforms over a finished brand concept."""

from __future__ import annotations

import base64
import binascii
import json
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

from concept import BrandConcept

_SLUG_RE = re.compile(r"[^A-Za-z0-9]+")
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?;base64,(?P<data>.*)$", re.DOTALL)


def slugify(name: str) -> str:
    slug = _SLUG_RE.sub("-", name).strip("-")
    return slug or "brand"


def export_filenames(concept: BrandConcept) -> Dict[str, str]:
    slug = slugify(concept.name)
    return {
        "markdown": f"{slug}-Identity.md",
        "image": f"{slug}-Visual.png",
        "json": f"{slug}-Data.json",
    }


def render_markdown(concept: BrandConcept) -> str:
    lines = [
        f"# {concept.name}",
        "",
        f"> {concept.tagline}",
        "",
        "## The Narrative",
        "",
        concept.description,
        "",
        "## Vibe",
        "",
        concept.vibe,
        "",
        "## Target Audience",
        "",
        concept.target_audience,
        "",
        "## Signature Products",
        "",
    ]
    for product in concept.products:
        lines += [f"### {product.name} — {product.price_point}", "", product.description, ""]
    lines += [
        "## Marketing Copy",
        "",
        f'> "{concept.marketing_copy}"',
        "",
        "## Palette",
        "",
    ]
    lines += [f"- {slot.title()}: `{hex_}`" for slot, hex_ in concept.palette.items()]
    return "\n".join(lines) + "\n"


def render_json(concept: BrandConcept) -> str:
    return json.dumps(concept.to_dict(), indent=2, ensure_ascii=False)


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into (mime type, raw bytes)."""
    match = _DATA_URI_RE.match(uri or "")
    if not match:
        raise ValueError("not a base64 data URI")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc
    return match.group("mime") or "application/octet-stream", data


def share_payload(concept: BrandConcept, url: str) -> Dict[str, str]:
    return {
        "title": concept.name,
        "text": f"{concept.name} — {concept.tagline}",
        "url": url,
    }


def write_exports(concept: BrandConcept, image_url: Optional[str], out_dir: Path) -> Dict[str, Path]:
    """Write the Markdown, JSON and (if present) image files into out_dir."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    names = export_filenames(concept)

    written: Dict[str, Path] = {}
    md_path = out_dir / names["markdown"]
    md_path.write_text(render_markdown(concept), encoding="utf-8")
    written["markdown"] = md_path

    json_path = out_dir / names["json"]
    json_path.write_text(render_json(concept), encoding="utf-8")
    written["json"] = json_path

    if image_url:
        _, data = decode_data_uri(image_url)
        image_path = out_dir / names["image"]
        image_path.write_bytes(data)
        written["image"] = image_path

    return written
