"""Brand concept data model and boundary validation.

Everything the text model returns passes through parse_concept() before the
rest of the app sees it. A response that is missing fields, has blank
strings or malformed hex colours is rejected, never patched.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

PALETTE_ORDER = ("primary", "secondary", "accent", "background")


class AppPhase(str, Enum):
    IDLE = "IDLE"
    GENERATING_TEXT = "GENERATING_TEXT"
    GENERATING_IMAGE = "GENERATING_IMAGE"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"

    @property
    def is_busy(self) -> bool:
        return self in (AppPhase.GENERATING_TEXT, AppPhase.GENERATING_IMAGE)


# ── Models ────────────────────────────────────────────────────────────────────

class _Strict(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _non_blank(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("must be a non-empty string")
        return value


class Palette(_Strict):
    primary: str
    secondary: str
    accent: str
    background: str

    @field_validator("primary", "secondary", "accent", "background")
    @classmethod
    def _hex(cls, value: str) -> str:
        if not HEX_COLOR_RE.match(value):
            raise ValueError(f"not a hex colour: {value!r}")
        return value

    def items(self) -> List[tuple]:
        """(slot, hex) pairs in display order."""
        return [(slot, getattr(self, slot)) for slot in PALETTE_ORDER]


class Product(_Strict):
    name: str
    description: str
    price_point: str = Field(alias="pricePoint")


class BrandConcept(_Strict):
    name: str
    tagline: str
    description: str
    target_audience: str = Field(alias="targetAudience")
    vibe: str
    marketing_copy: str = Field(alias="marketingCopy")
    palette: Palette
    products: List[Product] = Field(min_length=1)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form, camelCase keys in declaration order."""
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class GeneratedAsset:
    concept: Optional[BrandConcept] = None
    image_url: Optional[str] = None


class ConceptError(ValueError):
    """Raised when model output cannot be turned into a BrandConcept."""


def parse_concept(text: Optional[str]) -> BrandConcept:
    """Deserialise and validate a text-model response."""
    if not text or not text.strip():
        raise ConceptError("empty response")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConceptError(f"response is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConceptError(f"expected a JSON object, got {type(data).__name__}")
    try:
        return BrandConcept.model_validate(data)
    except ValidationError as exc:
        raise ConceptError(f"response does not match schema: {exc}") from exc


# ── Structured-output schema ──────────────────────────────────────────────────
# OpenAPI-subset form accepted by google-genai's response_schema. The same
# dict is embedded in the prompt for providers without schema enforcement.

def _string(description: str) -> Dict[str, str]:
    return {"type": "STRING", "description": description}


BRAND_CONCEPT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "name": _string("A punchy, memorable brand name."),
        "tagline": _string("A short, impactful slogan."),
        "description": _string("A 2-sentence elevator pitch."),
        "targetAudience": _string("Who is this for?"),
        "vibe": _string("Keywords describing the mood (e.g., Ethereal, Industrial)."),
        "marketingCopy": _string("A paragraph of high-converting copy."),
        "palette": {
            "type": "OBJECT",
            "properties": {slot: _string("Hex code") for slot in PALETTE_ORDER},
            "required": list(PALETTE_ORDER),
        },
        "products": {
            "type": "ARRAY",
            "description": "List of 3 signature products or services this brand offers.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": _string("Creative product name"),
                    "description": _string("Short description"),
                    "pricePoint": _string("e.g. High-end, Accessible, $$$"),
                },
                "required": ["name", "description", "pricePoint"],
            },
        },
    },
    "required": [
        "name", "tagline", "description", "targetAudience",
        "vibe", "palette", "marketingCopy", "products",
    ],
}
