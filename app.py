"""Velvet & Void — Flask web application."""

from __future__ import annotations

import io
import json
import logging
import os
import queue
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, render_template, request, send_file, session
from flask_cors import CORS

load_dotenv()

import log_setup
log_setup.configure()

import costs
import exports
import generation
import pipeline
from concept import AppPhase

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = Flask(__name__, template_folder="templates", static_folder="static")
app.secret_key = os.environ.get("SECRET_KEY") or os.urandom(32)
CORS(app)

_TERMINAL = (AppPhase.COMPLETE.value, AppPhase.ERROR.value)


@dataclass
class _Slot:
    """One browser session: its run state plus the SSE event queue."""

    sid: str
    session: pipeline.BrandSession
    events: "queue.Queue[Optional[Dict]]" = field(default_factory=lambda: queue.Queue(maxsize=100))

    def push(self, event: Optional[Dict]) -> None:
        try:
            self.events.put_nowait(event)
        except queue.Full:
            pass

    def drain(self) -> None:
        while True:
            try:
                self.events.get_nowait()
            except queue.Empty:
                return


_slots: "OrderedDict[str, _Slot]" = OrderedDict()
_slots_lock = threading.Lock()
MAX_SESSIONS = int(os.environ.get("MAX_SESSIONS", 256))


def _make_client(cost_tracker: Optional[costs.CostTracker] = None) -> Any:
    return generation.GenerationClient.from_env(cost_tracker=cost_tracker)


def _start_worker(target, *args) -> None:
    threading.Thread(target=target, args=args, daemon=True).start()


def _find_slot() -> Optional[_Slot]:
    """The caller's slot, if it has ever submitted. Never creates one."""
    sid = session.get("sid")
    if not sid:
        return None
    with _slots_lock:
        slot = _slots.get(sid)
        if slot is not None:
            _slots.move_to_end(sid)
        return slot


def _claim_slot() -> _Slot:
    """The caller's slot, created on first submission (LRU-bounded)."""
    sid = session.get("sid")
    if not sid:
        sid = session["sid"] = uuid.uuid4().hex
    with _slots_lock:
        slot = _slots.get(sid)
        if slot is None:
            slot = _Slot(sid=sid, session=pipeline.BrandSession(client=None))
            slot.session.progress_cb = slot.push
            _slots[sid] = slot
        _slots.move_to_end(sid)
        _evict_idle_slots(keep=sid)
        return slot


def _evict_idle_slots(keep: str) -> None:
    # Oldest first; the caller and runs still in flight are never dropped
    for sid in list(_slots):
        if len(_slots) <= MAX_SESSIONS:
            return
        if sid != keep and not _slots[sid].session.state.phase.is_busy:
            log.debug("Evicting session %s", sid[:8])
            del _slots[sid]


def _current_state() -> pipeline.PipelineState:
    slot = _find_slot()
    return slot.session.state if slot else pipeline.PipelineState()


def _sse_event(data: dict) -> str:
    return f"data: {json.dumps(data)}\n\n"


def _attachment(data: bytes, mimetype: str, filename: str) -> Response:
    return send_file(io.BytesIO(data), mimetype=mimetype, as_attachment=True, download_name=filename)


def _no_concept():
    return jsonify({"error": "No brand concept has been generated yet"}), 404


# ---------------------------------------------------------------------------
# Pipeline thread
# ---------------------------------------------------------------------------

def _run_generation(slot: _Slot, prompt: str, cost_tracker: costs.CostTracker) -> None:
    with log_setup.session_context(slot.sid):
        t0 = time.time()
        state = slot.session.execute(prompt)
        log.info("Run finished: phase=%s", state.phase.value)
        try:
            costs.append_cost_log(slot.sid[:8], prompt, time.time() - t0, cost_tracker)
        except OSError as exc:
            log.warning("Cost log write failed: %s", exc)


# ---------------------------------------------------------------------------
# Routes — UI
# ---------------------------------------------------------------------------

@app.get("/")
def index():
    return render_template("index.html")


@app.get("/api/config")
def api_config():
    try:
        return jsonify(generation.GenerationClient(generation.settings_from_env()).describe())
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 500


# ---------------------------------------------------------------------------
# Routes — Generation
# ---------------------------------------------------------------------------

@app.post("/api/generate")
def api_generate():
    body = request.get_json(silent=True)
    raw = body.get("prompt") if isinstance(body, dict) else None
    try:
        prompt = pipeline.validate_prompt(raw)
    except pipeline.ValidationFailure as exc:
        return jsonify({"error": str(exc)}), 400

    cost_tracker = costs.CostTracker()
    try:
        client = _make_client(cost_tracker)
    except ValueError as exc:
        log.error("Generation client misconfigured: %s", exc)
        return jsonify({"error": str(exc)}), 500

    slot = _claim_slot()
    try:
        if slot.session.state.phase.is_busy:
            raise pipeline.PipelineBusy("run in flight")
        slot.drain()
        state = slot.session.submit(prompt)
    except pipeline.PipelineBusy:
        return jsonify({"error": "A generation is already in progress"}), 409

    slot.session.client = client
    with log_setup.session_context(slot.sid):
        log.info("Run started: prompt=%r", prompt[:80])
    _start_worker(_run_generation, slot, prompt, cost_tracker)

    return jsonify({"phase": state.phase.value}), 202


@app.get("/api/state")
def api_state():
    return jsonify(_current_state().to_dict())


@app.get("/api/stream")
def api_stream():
    """Server-Sent Events stream of phase changes for this session."""
    slot = _find_slot()

    def generate() -> Generator[str, None, None]:
        current = (slot.session.state if slot else pipeline.PipelineState()).to_dict()
        yield _sse_event(current)
        if slot is None or current["phase"] in _TERMINAL or current["phase"] == AppPhase.IDLE.value:
            yield _sse_event({"type": "done"})
            return
        while True:
            try:
                event = slot.events.get(timeout=25)
            except queue.Empty:
                yield _sse_event({"type": "heartbeat"})
                continue
            if event is None:
                break
            yield _sse_event(event)
            if event.get("phase") in _TERMINAL:
                break
        yield _sse_event({"type": "done"})

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )


# ---------------------------------------------------------------------------
# Routes — Export / share
# ---------------------------------------------------------------------------

@app.get("/api/export/markdown")
def api_export_markdown():
    concept = _current_state().concept
    if concept is None:
        return _no_concept()
    body = exports.render_markdown(concept)
    if request.args.get("download") == "1":
        name = exports.export_filenames(concept)["markdown"]
        return _attachment(body.encode("utf-8"), "text/markdown", name)
    return Response(body, mimetype="text/markdown")


@app.get("/api/export/json")
def api_export_json():
    concept = _current_state().concept
    if concept is None:
        return _no_concept()
    name = exports.export_filenames(concept)["json"]
    return _attachment(exports.render_json(concept).encode("utf-8"), "application/json", name)


@app.get("/api/export/image")
def api_export_image():
    state = _current_state()
    if state.concept is None or not state.image_url:
        return jsonify({"error": "No image has been generated yet"}), 404
    mimetype, data = exports.decode_data_uri(state.image_url)
    return _attachment(data, mimetype, exports.export_filenames(state.concept)["image"])


@app.get("/api/share")
def api_share():
    concept = _current_state().concept
    if concept is None:
        return _no_concept()
    return jsonify(exports.share_payload(concept, request.host_url))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    print(f"\n  Velvet & Void → http://localhost:{port}\n")
    app.run(host="0.0.0.0", port=port, debug=False, threaded=True)
