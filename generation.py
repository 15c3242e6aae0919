"""Generation client: brand concept text + matching visual.

Both calls go to an external provider. Gemini is the default for both
steps; OpenAI / Anthropic can stand in for the text step and Replicate for
the image step. Every failure surfaces as GenerationFailure.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from typing import Any, Dict, Optional

import requests
from google import genai
from google.genai import types

from concept import BRAND_CONCEPT_SCHEMA, BrandConcept, ConceptError, parse_concept

log = logging.getLogger(__name__)

TEXT_PROVIDERS = ("gemini", "openai", "anthropic")
IMAGE_PROVIDERS = ("gemini", "replicate")

DEFAULT_TEXT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-5",
}
DEFAULT_IMAGE_MODELS = {
    "gemini": "gemini-2.5-flash-image",
    "replicate": "google/nano-banana",
}

SYSTEM_INSTRUCTION = (
    "You are the Creative Director of Velvet & Void, an avant-garde branding agency. "
    "Your goal is to take a simple user idea and transform it into a high-end, luxury, "
    "or cutting-edge brand identity. "
    "Be bold, poetic, and precise. Avoid generic corporate jargon. Use evocative language."
)

IMAGE_PROMPT_TEMPLATE = (
    'A cinematic, high-end editorial photograph representing the brand "{name}".\n'
    "Vibe: {vibe}.\n"
    "Key Colors: {primary}, {accent}.\n"
    "Context: {description}.\n"
    "Style: Photorealistic, 8k resolution, dramatic lighting, award-winning photography.\n"
    "Do not include text in the image."
)


class GenerationFailure(RuntimeError):
    """A provider call errored or returned unusable output."""


def build_image_prompt(concept: BrandConcept) -> str:
    return IMAGE_PROMPT_TEMPLATE.format(
        name=concept.name,
        vibe=concept.vibe,
        primary=concept.palette.primary,
        accent=concept.palette.accent,
        description=concept.description,
    )


def to_data_uri(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def settings_from_env() -> Dict[str, str]:
    text_provider = os.environ.get("TEXT_PROVIDER", "gemini").strip().lower()
    image_provider = os.environ.get("IMAGE_PROVIDER", "gemini").strip().lower()
    return {
        "text_provider": text_provider,
        "text_model": os.environ.get("TEXT_MODEL", ""),
        "image_provider": image_provider,
        "image_model": os.environ.get("IMAGE_MODEL", ""),
    }


class GenerationClient:
    """Wraps the two provider calls of a generation run."""

    def __init__(
        self,
        settings: Optional[Dict] = None,
        genai_client: Optional[Any] = None,
        cost_tracker: Optional[Any] = None,   # costs.CostTracker
    ) -> None:
        settings = settings or {}
        self.text_provider: str = settings.get("text_provider") or "gemini"
        self.image_provider: str = settings.get("image_provider") or "gemini"
        if self.text_provider not in TEXT_PROVIDERS:
            raise ValueError(f"text_provider must be one of {TEXT_PROVIDERS}")
        if self.image_provider not in IMAGE_PROVIDERS:
            raise ValueError(f"image_provider must be one of {IMAGE_PROVIDERS}")

        self.text_model: str = settings.get("text_model") or DEFAULT_TEXT_MODELS[self.text_provider]
        self.image_model: str = settings.get("image_model") or DEFAULT_IMAGE_MODELS[self.image_provider]
        self.cost_tracker = cost_tracker
        self._genai = genai_client

    @classmethod
    def from_env(cls, cost_tracker: Optional[Any] = None) -> "GenerationClient":
        return cls(settings_from_env(), cost_tracker=cost_tracker)

    def describe(self) -> Dict[str, str]:
        return {
            "text_provider": self.text_provider,
            "text_model": self.text_model,
            "image_provider": self.image_provider,
            "image_model": self.image_model,
        }

    # ------------------------------------------------------------------
    # Brand concept
    # ------------------------------------------------------------------

    def generate_identity(self, prompt: str) -> BrandConcept:
        """Ask the text model for a schema-shaped brand concept."""
        log.info("Identity request: %s/%s  prompt=%r", self.text_provider, self.text_model, prompt[:80])
        try:
            if self.text_provider == "gemini":
                text = self._gemini_text(prompt)
            elif self.text_provider == "openai":
                text = _strip_fences(self._openai_text(prompt))
            else:
                text = _strip_fences(self._anthropic_text(prompt))
            concept = parse_concept(text)
        except GenerationFailure as exc:
            log.error("Brand generation failed: %s", exc)
            raise
        except ConceptError as exc:
            log.error("Brand generation returned unusable output: %s", exc)
            raise GenerationFailure(f"Unusable brand concept: {exc}") from exc
        except Exception as exc:
            log.error("Brand generation error: %s", exc, exc_info=True)
            raise GenerationFailure(f"Text generation failed: {exc}") from exc

        log.info("Identity ready: %r (%d products)", concept.name, len(concept.products))
        return concept

    def _gemini_text(self, prompt: str) -> Optional[str]:
        t0 = time.time()
        response = self._gemini().models.generate_content(
            model=self.text_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                response_mime_type="application/json",
                response_schema=BRAND_CONCEPT_SCHEMA,
            ),
        )
        usage = getattr(response, "usage_metadata", None)
        in_tok = getattr(usage, "prompt_token_count", None) or 0
        out_tok = getattr(usage, "candidates_token_count", None) or 0
        log.info(
            "Gemini call: model=%s  %d in / %d out tokens  %.1fs",
            self.text_model, in_tok, out_tok, time.time() - t0,
        )
        if self.cost_tracker:
            self.cost_tracker.record_text("gemini", self.text_model, in_tok, out_tok)
        return response.text

    def _schema_system_prompt(self) -> str:
        return (
            f"{SYSTEM_INSTRUCTION}\n\n"
            "Return valid JSON only — no markdown fences, no commentary — "
            "matching this schema exactly (all fields required):\n"
            f"{json.dumps(BRAND_CONCEPT_SCHEMA, indent=2)}"
        )

    def _openai_text(self, prompt: str) -> Optional[str]:
        from openai import AuthenticationError, OpenAI, RateLimitError

        api_key = os.environ.get("OPENAI_API_KEY", "")
        if not api_key:
            raise GenerationFailure("OPENAI_API_KEY not set")
        t0 = time.time()
        client = OpenAI(api_key=api_key)
        try:
            resp = client.chat.completions.create(
                model=self.text_model,
                messages=[
                    {"role": "system", "content": self._schema_system_prompt()},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except AuthenticationError as exc:
            raise GenerationFailure("OpenAI API key is invalid or expired.") from exc
        except RateLimitError as exc:
            raise GenerationFailure(f"OpenAI rate limit or quota: {exc}") from exc

        in_tok = resp.usage.prompt_tokens
        out_tok = resp.usage.completion_tokens
        log.info(
            "OpenAI call: model=%s  %d in / %d out tokens  %.1fs",
            self.text_model, in_tok, out_tok, time.time() - t0,
        )
        if self.cost_tracker:
            self.cost_tracker.record_text("openai", self.text_model, in_tok, out_tok)
        return resp.choices[0].message.content

    def _anthropic_text(self, prompt: str) -> Optional[str]:
        import anthropic

        api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        if not api_key:
            raise GenerationFailure("ANTHROPIC_API_KEY not set")
        t0 = time.time()
        client = anthropic.Anthropic(api_key=api_key)
        msg = client.messages.create(
            model=self.text_model,
            max_tokens=2048,
            system=self._schema_system_prompt(),
            messages=[{"role": "user", "content": prompt}],
        )
        in_tok = msg.usage.input_tokens
        out_tok = msg.usage.output_tokens
        log.info(
            "Anthropic call: model=%s  %d in / %d out tokens  %.1fs",
            self.text_model, in_tok, out_tok, time.time() - t0,
        )
        if self.cost_tracker:
            self.cost_tracker.record_text("anthropic", self.text_model, in_tok, out_tok)
        return "".join(getattr(block, "text", "") for block in msg.content)

    # ------------------------------------------------------------------
    # Visual
    # ------------------------------------------------------------------

    def generate_image(self, concept: BrandConcept) -> str:
        """Render the concept's visual; returns a PNG data URI."""
        prompt = build_image_prompt(concept)
        log.info("Image request: %s/%s  brand=%r", self.image_provider, self.image_model, concept.name)
        t0 = time.time()
        try:
            if self.image_provider == "gemini":
                data = self._gemini_image(prompt)
            else:
                data = self._replicate_image(prompt)
        except GenerationFailure as exc:
            log.error("Image generation failed: %s", exc)
            raise
        except Exception as exc:
            log.error("Image generation error: %s", exc, exc_info=True)
            raise GenerationFailure(f"Image generation failed: {exc}") from exc

        log.info("Image ready: %d bytes  %.1fs", len(data), time.time() - t0)
        if self.cost_tracker:
            self.cost_tracker.record_image(self.image_provider, self.image_model)
        return to_data_uri(data)

    def _gemini_image(self, prompt: str) -> bytes:
        response = self._gemini().models.generate_content(
            model=self.image_model,
            contents=[types.Part(text=prompt)],
        )
        data = _first_inline_image(response)
        if data is None:
            raise GenerationFailure("No image data found in response")
        return data

    def _replicate_image(self, prompt: str) -> bytes:
        import replicate as rep

        token = os.environ.get("REPLICATE_API_TOKEN", "")
        if not token:
            raise GenerationFailure("REPLICATE_API_TOKEN not set")

        client = rep.Client(api_token=token)
        output = client.run(
            self.image_model,
            input={"prompt": prompt, "aspect_ratio": "1:1", "output_format": "png"},
        )
        raw = output[0] if isinstance(output, list) and output else output
        if not raw:
            raise GenerationFailure("Replicate returned no output")
        url = getattr(raw, "url", None) or str(raw)

        resp = requests.get(url, timeout=90)
        resp.raise_for_status()
        if not resp.content:
            raise GenerationFailure("Replicate image download was empty")
        return resp.content

    def _gemini(self) -> Any:
        if self._genai is None:
            api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
            if not api_key:
                raise GenerationFailure("GEMINI_API_KEY or GOOGLE_API_KEY not set")
            self._genai = genai.Client(api_key=api_key)
        return self._genai


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def _first_inline_image(response: Any) -> Optional[bytes]:
    """Scan every part of every candidate for inline image bytes."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline else None
            if not data:
                continue
            if isinstance(data, str):
                # Some transports hand back the base64 text undecoded
                return base64.b64decode(data)
            return bytes(data)
    return None


def _strip_fences(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    text = text.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    return text
