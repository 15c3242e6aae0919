"""Cost tracking for brand generation runs.

Pricing tables are approximate and updated periodically.
Text costs are exact (calculated from token counts).
Image costs are estimated (per-image flat rate based on known pricing).

Output:
  logs/costs.log  — human-readable append-only log
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

log = logging.getLogger(__name__)

LOGS_DIR = Path(__file__).parent / "logs"
COST_LOG = LOGS_DIR / "costs.log"

# ── Pricing tables ────────────────────────────────────────────────────────────
# (input $/1M tokens, output $/1M tokens), matched by prefix
_TEXT_PRICING: Dict[str, Dict[str, tuple]] = {
    "gemini": {
        "gemini-2.5-pro":        (1.25, 10.00),
        "gemini-2.5-flash-lite": (0.10,  0.40),
        "gemini-2.5-flash":      (0.30,  2.50),
        "gemini-2.0-flash":      (0.10,  0.40),
    },
    "openai": {
        "gpt-4.1-mini":  (0.40,  1.60),
        "gpt-4.1-nano":  (0.10,  0.40),
        "gpt-4.1":       (2.00,  8.00),
        "gpt-4o-mini":   (0.15,  0.60),
        "gpt-4o":        (2.50, 10.00),
    },
    "anthropic": {
        "claude-opus-4":    (15.00, 75.00),
        "claude-sonnet-4":  (3.00,  15.00),
        "claude-haiku-4":   (0.80,   4.00),
    },
}
_TEXT_DEFAULT = (2.50, 10.00)

# Estimated $/image
_IMAGE_PRICING: Dict[str, float] = {
    "gemini-2.5-flash-image":        0.039,
    "gemini-2.5-flash-image-preview": 0.039,
    "google/nano-banana":            0.039,
    "google/nano-banana-pro":        0.150,
    "black-forest-labs/flux-schnell": 0.003,
    "black-forest-labs/flux-1.1-pro": 0.040,
}
_IMAGE_DEFAULT = 0.040


def _text_rate(provider: str, model: str) -> tuple:
    """Return (input_rate, output_rate) per 1M tokens."""
    for prefix, rate in _TEXT_PRICING.get(provider, {}).items():
        if model.startswith(prefix):
            return rate
    log.debug("No %s pricing match for '%s', using default", provider, model)
    return _TEXT_DEFAULT


def _image_rate(model: str) -> float:
    rate = _IMAGE_PRICING.get(model)
    if rate is None:
        log.debug("No image pricing match for '%s', using default", model)
        return _IMAGE_DEFAULT
    return rate


# ── CostTracker ───────────────────────────────────────────────────────────────

class CostTracker:
    """Accumulates cost records for a single pipeline run."""

    def __init__(self) -> None:
        self.items: List[Dict] = []

    def record_text(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
    ) -> float:
        """Record a text-model call and return the calculated cost in USD."""
        in_rate, out_rate = _text_rate(provider, model)
        cost = (input_tokens * in_rate + output_tokens * out_rate) / 1_000_000
        self.items.append(
            {
                "type": "text",
                "provider": provider,
                "model": model,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cost": cost,
                "estimated": False,
            }
        )
        log.debug(
            "Text cost %s/%s  %d in / %d out tokens  $%.6f",
            provider, model, input_tokens, output_tokens, cost,
        )
        return cost

    def record_image(self, provider: str, model: str) -> float:
        """Record an image call and return the estimated cost in USD."""
        cost = _image_rate(model)
        self.items.append(
            {
                "type": "image",
                "provider": provider,
                "model": model,
                "cost": cost,
                "estimated": True,
            }
        )
        log.debug("Image cost %s/%s  ~$%.6f", provider, model, cost)
        return cost

    def summary(self) -> Dict:
        by_provider: Dict[str, float] = {}
        for item in self.items:
            by_provider[item["provider"]] = by_provider.get(item["provider"], 0.0) + item["cost"]
        return {
            "items": self.items,
            "by_provider": by_provider,
            "total": sum(by_provider.values()),
            "has_estimates": any(i["estimated"] for i in self.items),
        }


# ── Log writer ────────────────────────────────────────────────────────────────

_DIV = "─" * 81
_HDIV = "═" * 81


def append_cost_log(label: str, prompt: str, duration: float, tracker: CostTracker) -> None:
    """Append a formatted cost record to costs.log."""
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    summary = tracker.summary()
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    est = "~" if summary["has_estimates"] else " "

    lines = [
        _HDIV,
        f"  Run {label:<12}  {prompt[:40]!r}   {now}   {duration:.1f}s",
        _DIV,
    ]
    for item in summary["items"]:
        if item["type"] == "text":
            detail = f"{item['input_tokens']:,}↑ / {item['output_tokens']:,}↓"
            cost_str = f"${item['cost']:.6f}"
        else:
            detail = "1 image"
            cost_str = f"~${item['cost']:.6f}"
        lines.append(
            f"  [{item['type']:<5}] {item['provider']:<10} {item['model']:<30} {detail:<20} {cost_str:>11}"
        )
    lines.append(_DIV)
    lines.append(f"  {'Run Total:':<42}{est}${summary['total']:>12.6f}")
    lines.append("")

    with open(COST_LOG, "a", encoding="utf-8") as fh:
        fh.write("\n".join(lines) + "\n")

    log.info("Cost logged: run=%s  total=%s$%.4f", label, est, summary["total"])
