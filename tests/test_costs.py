from __future__ import annotations

import pytest

import costs


def test_text_cost_from_tokens() -> None:
    tracker = costs.CostTracker()
    cost = tracker.record_text("gemini", "gemini-2.5-flash", 1_000_000, 1_000_000)
    assert cost == pytest.approx(0.30 + 2.50)


def test_prefix_ordering_prefers_specific_model() -> None:
    tracker = costs.CostTracker()
    assert tracker.record_text("gemini", "gemini-2.5-flash-lite", 1_000_000, 0) == pytest.approx(0.10)
    assert tracker.record_text("openai", "gpt-4.1-mini-2025", 1_000_000, 0) == pytest.approx(0.40)


def test_unknown_models_use_defaults() -> None:
    tracker = costs.CostTracker()
    assert tracker.record_text("anthropic", "claude-next", 1_000_000, 0) == pytest.approx(2.50)
    assert tracker.record_image("replicate", "someone/new-model") == pytest.approx(0.040)


def test_summary_groups_by_provider() -> None:
    tracker = costs.CostTracker()
    tracker.record_text("gemini", "gemini-2.5-flash", 100, 200)
    tracker.record_image("gemini", "gemini-2.5-flash-image")
    summary = tracker.summary()
    assert set(summary["by_provider"]) == {"gemini"}
    assert summary["total"] == pytest.approx(sum(i["cost"] for i in summary["items"]))
    assert summary["has_estimates"] is True


def test_append_cost_log_writes_block() -> None:
    tracker = costs.CostTracker()
    tracker.record_text("gemini", "gemini-2.5-flash", 10, 20)
    costs.append_cost_log("abc123", "a coffee shop for introverts", 3.2, tracker)
    costs.append_cost_log("def456", "moon shoes", 1.0, costs.CostTracker())

    text = costs.COST_LOG.read_text(encoding="utf-8")
    assert text.count("Run Total:") == 2
    assert "abc123" in text and "gemini-2.5-flash" in text
