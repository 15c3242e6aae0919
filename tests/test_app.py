from __future__ import annotations

import json
import logging
from collections import OrderedDict

import pytest

import app as webapp
from generation import GenerationFailure

PNG_BYTES = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def client_factory(monkeypatch, fake_client_cls):
    """Run generation inline with a fake provider client."""
    made = []

    def factory(**kwargs):
        def make(cost_tracker=None):
            fake = fake_client_cls(**kwargs)
            made.append(fake)
            return fake
        monkeypatch.setattr(webapp, "_make_client", make)
        return made

    monkeypatch.setattr(webapp, "_start_worker", lambda target, *args: target(*args))
    monkeypatch.setattr(webapp, "_slots", OrderedDict())
    return factory


@pytest.fixture
def http():
    webapp.app.config["TESTING"] = True
    return webapp.app.test_client()


def test_index_renders(http) -> None:
    resp = http.get("/")
    assert resp.status_code == 200
    assert b"Manifest" in resp.data


def test_initial_state_is_idle(http, client_factory) -> None:
    assert http.get("/api/state").get_json() == {
        "phase": "IDLE", "concept": None, "imageUrl": None, "error": None,
    }


@pytest.mark.parametrize("body", [{"prompt": ""}, {"prompt": "   "}, {}, {"prompt": 42}])
def test_blank_prompt_is_rejected(http, client_factory, body) -> None:
    client_factory()
    resp = http.post("/api/generate", json=body)
    assert resp.status_code == 400
    assert http.get("/api/state").get_json()["phase"] == "IDLE"


def test_successful_generation(http, client_factory) -> None:
    made = client_factory()
    resp = http.post("/api/generate", json={"prompt": "  a coffee shop for introverts "})
    assert resp.status_code == 202
    assert resp.get_json() == {"phase": "GENERATING_TEXT"}
    assert made[0].prompts == ["a coffee shop for introverts"]

    state = http.get("/api/state").get_json()
    assert state["phase"] == "COMPLETE"
    assert state["concept"]["name"] == "Hush & Hearth"
    assert state["imageUrl"].startswith("data:image/png;base64,")


def test_text_failure_reports_generic_error(http, client_factory) -> None:
    client_factory(text_exc=GenerationFailure("quota exhausted for key abc"))
    http.post("/api/generate", json={"prompt": "moon shoes"})
    state = http.get("/api/state").get_json()
    assert state["phase"] == "ERROR"
    assert state["concept"] is None
    assert "quota" not in state["error"]
    assert http.get("/api/export/markdown").status_code == 404


def test_image_failure_keeps_concept_exportable(http, client_factory) -> None:
    client_factory(image_exc=GenerationFailure("no parts"))
    http.post("/api/generate", json={"prompt": "moon shoes"})
    state = http.get("/api/state").get_json()
    assert state["phase"] == "ERROR"
    assert state["concept"]["name"] == "Hush & Hearth"
    assert http.get("/api/export/json").status_code == 200
    assert http.get("/api/export/image").status_code == 404


def test_busy_session_rejects_submission(http, client_factory, monkeypatch) -> None:
    client_factory()
    monkeypatch.setattr(webapp, "_start_worker", lambda target, *args: None)
    assert http.post("/api/generate", json={"prompt": "first"}).status_code == 202
    resp = http.post("/api/generate", json={"prompt": "second"})
    assert resp.status_code == 409
    assert http.get("/api/state").get_json()["phase"] == "GENERATING_TEXT"


def test_sessions_are_isolated(client_factory) -> None:
    client_factory()
    first = webapp.app.test_client()
    second = webapp.app.test_client()
    first.post("/api/generate", json={"prompt": "moon shoes"})
    assert first.get("/api/state").get_json()["phase"] == "COMPLETE"
    assert second.get("/api/state").get_json()["phase"] == "IDLE"


def test_export_downloads(http, client_factory) -> None:
    client_factory()
    http.post("/api/generate", json={"prompt": "a coffee shop for introverts"})

    md = http.get("/api/export/markdown?download=1")
    assert md.status_code == 200
    assert "Hush-Hearth-Identity.md" in md.headers["Content-Disposition"]
    assert md.data.decode("utf-8").startswith("# Hush & Hearth")

    inline = http.get("/api/export/markdown")
    assert "Content-Disposition" not in inline.headers
    assert inline.data == md.data

    data = http.get("/api/export/json")
    assert "Hush-Hearth-Data.json" in data.headers["Content-Disposition"]
    assert json.loads(data.data)["palette"]["primary"] == "#2B1D14"

    image = http.get("/api/export/image")
    assert "Hush-Hearth-Visual.png" in image.headers["Content-Disposition"]
    assert image.mimetype == "image/png"
    assert image.data == PNG_BYTES

    # Downloads are repeatable
    assert http.get("/api/export/json").data == data.data


def test_exports_before_generation_are_404(http, client_factory) -> None:
    for path in ("/api/export/markdown", "/api/export/json", "/api/export/image", "/api/share"):
        assert http.get(path).status_code == 404


def test_share_payload(http, client_factory) -> None:
    client_factory()
    http.post("/api/generate", json={"prompt": "a coffee shop for introverts"})
    payload = http.get("/api/share").get_json()
    assert payload["title"] == "Hush & Hearth"
    assert payload["text"] == "Hush & Hearth — Coffee, quietly."
    assert payload["url"].startswith("http://localhost")


def test_stream_replays_terminal_state(http, client_factory) -> None:
    client_factory()
    http.post("/api/generate", json={"prompt": "a coffee shop for introverts"})
    resp = http.get("/api/stream")
    assert resp.mimetype == "text/event-stream"
    events = [
        json.loads(line[len("data: "):])
        for line in resp.get_data(as_text=True).splitlines()
        if line.startswith("data: ")
    ]
    assert events[0]["phase"] == "COMPLETE"
    assert events[-1] == {"type": "done"}


def test_config_lists_models(http, monkeypatch) -> None:
    monkeypatch.setenv("TEXT_PROVIDER", "gemini")
    monkeypatch.setenv("IMAGE_PROVIDER", "replicate")
    monkeypatch.delenv("TEXT_MODEL", raising=False)
    monkeypatch.delenv("IMAGE_MODEL", raising=False)
    assert http.get("/api/config").get_json() == {
        "text_provider": "gemini",
        "text_model": "gemini-2.5-flash",
        "image_provider": "replicate",
        "image_model": "google/nano-banana",
    }


def test_cost_log_written_after_run(http, client_factory) -> None:
    import costs

    client_factory()
    http.post("/api/generate", json={"prompt": "a coffee shop for introverts"})
    assert costs.COST_LOG.exists()


def test_reads_do_not_create_sessions(client_factory) -> None:
    anonymous = webapp.app.test_client(use_cookies=False)
    for path in ("/api/state", "/api/stream", "/api/export/json", "/api/share"):
        for _ in range(5):
            anonymous.get(path)
    assert len(webapp._slots) == 0


def test_idle_sessions_are_evicted_oldest_first(client_factory, monkeypatch) -> None:
    client_factory()
    monkeypatch.setattr(webapp, "MAX_SESSIONS", 2)
    browsers = [webapp.app.test_client() for _ in range(3)]
    for browser in browsers:
        assert browser.post("/api/generate", json={"prompt": "moon shoes"}).status_code == 202
    assert len(webapp._slots) == 2
    assert browsers[0].get("/api/state").get_json()["phase"] == "IDLE"
    assert browsers[2].get("/api/state").get_json()["phase"] == "COMPLETE"


def test_busy_sessions_survive_eviction(client_factory, monkeypatch) -> None:
    client_factory()
    monkeypatch.setattr(webapp, "MAX_SESSIONS", 1)
    monkeypatch.setattr(webapp, "_start_worker", lambda target, *args: None)
    busy = webapp.app.test_client()
    busy.post("/api/generate", json={"prompt": "first"})
    webapp.app.test_client().post("/api/generate", json={"prompt": "second"})
    assert busy.get("/api/state").get_json()["phase"] == "GENERATING_TEXT"


def test_blank_prompt_is_400_even_when_misconfigured(http, monkeypatch) -> None:
    def broken(cost_tracker=None):
        raise ValueError("GEMINI_API_KEY not set")

    monkeypatch.setattr(webapp, "_make_client", broken)
    assert http.post("/api/generate", json={"prompt": "  "}).status_code == 400
    resp = http.post("/api/generate", json={"prompt": "moon shoes"})
    assert resp.status_code == 500


def test_run_logs_are_tagged_with_session(http, client_factory, caplog) -> None:
    import log_setup

    caplog.set_level(logging.INFO, logger="app")
    client_factory()
    seen = []

    class _Recorder(logging.Handler):
        def emit(self, record):
            seen.append(log_setup.current_session())

    recorder = _Recorder(level=logging.INFO)
    logging.getLogger("app").addHandler(recorder)
    try:
        http.post("/api/generate", json={"prompt": "moon shoes"})
    finally:
        logging.getLogger("app").removeHandler(recorder)
    assert seen and all(tag != "-" and len(tag) == 8 for tag in seen)
    assert log_setup.current_session() == "-"
