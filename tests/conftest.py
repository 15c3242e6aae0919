from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import pytest

from concept import BrandConcept

PNG_BYTES = b"\x89PNG\r\n\x1a\n"
PNG_DATA_URI = "data:image/png;base64,iVBORw0KGgo="

SAMPLE_CONCEPT: Dict[str, Any] = {
    "name": "Hush & Hearth",
    "tagline": "Coffee, quietly.",
    "description": "A café built for the quiet ones. Every seat faces a window, never a stranger.",
    "targetAudience": "Introverts, remote workers and readers who want great coffee without small talk.",
    "vibe": "Hushed, amber-lit, bookish",
    "marketingCopy": "No queue banter. No names shouted across the room. Just a cup, a corner and the luxury of being left alone.",
    "palette": {
        "primary": "#2B1D14",
        "secondary": "#C8A27A",
        "accent": "#E07A5F",
        "background": "#F4EDE4",
    },
    "products": [
        {"name": "The Quiet Pour", "description": "Single-origin filter, served without conversation.", "pricePoint": "$$"},
        {"name": "Margin Notes", "description": "A notebook-and-espresso subscription.", "pricePoint": "$$$"},
        {"name": "Do Not Disturb Booth", "description": "A sound-dampened nook, bookable by the hour.", "pricePoint": "High-end"},
    ],
}


@pytest.fixture
def concept_data() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_CONCEPT)


@pytest.fixture
def concept() -> BrandConcept:
    return BrandConcept.model_validate(copy.deepcopy(SAMPLE_CONCEPT))


class FakeGenerationClient:
    """Stands in for generation.GenerationClient."""

    def __init__(
        self,
        concept: Optional[BrandConcept] = None,
        image_url: str = PNG_DATA_URI,
        text_exc: Optional[Exception] = None,
        image_exc: Optional[Exception] = None,
    ) -> None:
        self.concept = concept or BrandConcept.model_validate(copy.deepcopy(SAMPLE_CONCEPT))
        self.image_url = image_url
        self.text_exc = text_exc
        self.image_exc = image_exc
        self.prompts: List[str] = []
        self.image_calls: List[BrandConcept] = []

    def generate_identity(self, prompt: str) -> BrandConcept:
        self.prompts.append(prompt)
        if self.text_exc:
            raise self.text_exc
        return self.concept

    def generate_image(self, concept: BrandConcept) -> str:
        self.image_calls.append(concept)
        if self.image_exc:
            raise self.image_exc
        return self.image_url


@pytest.fixture
def fake_client_cls():
    return FakeGenerationClient


@pytest.fixture(autouse=True)
def _cost_log_in_tmp(tmp_path_factory, monkeypatch):
    import costs

    # Kept apart from tmp_path, which CLI tests use as their output dir
    logs = tmp_path_factory.mktemp("logs")
    monkeypatch.setattr(costs, "LOGS_DIR", logs)
    monkeypatch.setattr(costs, "COST_LOG", logs / "costs.log")
