#!/usr/bin/env python3
"""CLI wrapper for the brand generation pipeline.

Usage:
    python brand_cli.py --prompt "a coffee shop for introverts"
    python brand_cli.py --prompt "cyberpunk sneaker brand" --text-provider openai --json
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import log_setup
log_setup.configure()

import costs
import exports
import generation
import pipeline
from concept import AppPhase

log = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Turn a short idea into a brand identity (concept + visual)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python brand_cli.py --prompt "a coffee shop for introverts"
  python brand_cli.py --prompt "sustainable luxury travel" --image-provider replicate
  python brand_cli.py --prompt "moon shoes" --no-image --json
""",
    )
    parser.add_argument("--prompt", default=None, help="Free-text brand idea")
    parser.add_argument(
        "--text-provider",
        choices=generation.TEXT_PROVIDERS,
        default=os.environ.get("TEXT_PROVIDER", "gemini"),
        help="Provider for the brand concept (default: gemini)",
    )
    parser.add_argument("--text-model", default=os.environ.get("TEXT_MODEL"), help="Text model override")
    parser.add_argument(
        "--image-provider",
        choices=generation.IMAGE_PROVIDERS,
        default=os.environ.get("IMAGE_PROVIDER", "gemini"),
        help="Provider for the brand visual (default: gemini)",
    )
    parser.add_argument("--image-model", default=os.environ.get("IMAGE_MODEL"), help="Image model override")
    parser.add_argument(
        "--output-dir",
        default="cli_output",
        help="Directory to save the exports (default: cli_output)",
    )
    parser.add_argument("--json", action="store_true", help="Print the concept JSON to stdout")
    parser.add_argument("--no-image", action="store_true", help="Stop after the brand concept")

    args = parser.parse_args(argv)

    if not args.prompt or not args.prompt.strip():
        print("✗  --prompt is required", file=sys.stderr)
        return 2

    settings = {
        "text_provider": args.text_provider,
        "text_model": args.text_model,
        "image_provider": args.image_provider,
        "image_model": args.image_model,
    }
    cost_tracker = costs.CostTracker()
    try:
        client = generation.GenerationClient(settings, cost_tracker=cost_tracker)
    except ValueError as exc:
        print(f"✗  {exc}", file=sys.stderr)
        return 2

    prompt = args.prompt.strip()
    _echo("\n  ✦ Velvet & Void")
    _echo(f"  Idea    : {prompt}")
    _echo(f"  Text    : {client.text_provider}/{client.text_model}")
    if not args.no_image:
        _echo(f"  Visual  : {client.image_provider}/{client.image_model}")
    _echo("")

    t0 = time.time()
    if args.no_image:
        try:
            concept = client.generate_identity(prompt)
        except Exception as exc:
            log.error("Concept step failed: %s", exc, exc_info=True)
            print(f"\n✗  {pipeline.FAILURE_MESSAGE}  (details in logs/app.log)", file=sys.stderr)
            _write_cost_log(prompt, t0, cost_tracker)
            return 1
        image_url = None
    else:
        session = pipeline.BrandSession(client, progress_cb=_progress)
        state = session.run(prompt)
        if state.phase is AppPhase.ERROR:
            print(f"\n✗  {state.error}  (details in logs/app.log)", file=sys.stderr)
            _write_cost_log(prompt, t0, cost_tracker)
            if state.concept is not None:
                exports.write_exports(state.concept, None, _run_dir(args.output_dir, state.concept.name))
            return 1
        concept, image_url = state.concept, state.image_url

    out_dir = _run_dir(args.output_dir, concept.name)
    written = exports.write_exports(concept, image_url, out_dir)
    summary = cost_tracker.summary()
    _write_cost_log(prompt, t0, cost_tracker)

    _echo("\n  ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    _echo(f"  Brand   : {concept.name}")
    _echo(f"  Tagline : {concept.tagline}")
    _echo(f"  Palette : {'  '.join(hex_ for _, hex_ in concept.palette.items())}")
    _echo(f"  Duration: {time.time() - t0:.1f}s")
    _echo(f"  Cost    : ~${summary['total']:.4f}")
    for path in written.values():
        _echo(f"  ✓ {path}")
    _echo("")

    if args.json:
        print(exports.render_json(concept))
    return 0


def _progress(event: dict) -> None:
    prefix = {
        AppPhase.GENERATING_TEXT.value:  "  ◌ ",
        AppPhase.GENERATING_IMAGE.value: "  ✓ ",
        AppPhase.COMPLETE.value:         "  ✓ ",
        AppPhase.ERROR.value:            "  ✗ ",
    }.get(event.get("phase"), "    ")
    msg = event.get("message", "")
    if event.get("phase") == AppPhase.GENERATING_IMAGE.value and event.get("concept"):
        msg = f"Manifesting {event['concept']['name']}… {msg}"
    _echo(f"{prefix}{msg}")


def _run_dir(base: str, name: str) -> Path:
    return Path(base) / f"{exports.slugify(name)}_{int(time.time())}"


def _write_cost_log(prompt: str, t0: float, tracker: costs.CostTracker) -> None:
    try:
        costs.append_cost_log(f"cli-{int(t0)}", prompt, time.time() - t0, tracker)
    except OSError as exc:
        print(f"  ⚠ cost log not written: {exc}", file=sys.stderr)


def _echo(msg: str) -> None:
    print(msg, flush=True)


if __name__ == "__main__":
    raise SystemExit(main())
