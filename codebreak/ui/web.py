"""Web-based dashboard for Code ∧ Break.

A lightweight Flask app serving a single-page dashboard with:
- Timer display and controls
- Profile picker and editor
- Emergency break and session statistics
- Named quick presets, manual save and quick backups
"""

import logging
import threading
from typing import Any, Optional

from flask import Flask, jsonify, render_template_string, request

from codebreak.core.models import MAX_PROFILE_NAME_LENGTH, QUICK_PRESETS, NotificationType, format_time
from codebreak.persistence.store import EXPORT_FORMATS, profile_to_dict

logger = logging.getLogger(__name__)

# Will be set by start_dashboard()
_app_ref = None  # type: Optional[Any]  # CodeBreakApp

TIMER_ACTIONS = (
    "start", "pause", "toggle", "stop", "reset", "acknowledge", "continue", "snooze", "emergency",
)


def create_flask_app() -> Flask:
    app = Flask(__name__)
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0

    @app.route("/")
    def index():
        return render_template_string(DASHBOARD_HTML)

    @app.route("/api/status")
    def api_status():
        if _app_ref is None:
            return jsonify({"error": "not initialized"})
        engine = _app_ref.engine
        profile = _app_ref.registry.current_with_pending()
        return jsonify({
            "state": engine.state.value,
            "phase": engine.current_phase.value,
            "remaining": engine.remaining_seconds,
            "formatted": format_time(engine.remaining_seconds),
            "cycle": engine.current_cycle,
            "pomodoro_mode": engine.pomodoro_mode,
            "notification_type": engine.current_notification_type.name,
            "status_text": _app_ref.controller.status_text(),
            "statistics": _app_ref.controller.statistics().to_dict(),
            "profile": profile_to_dict(profile) if profile is not None else None,
            "unsaved": _app_ref.scheduler.has_unsaved_changes(),
        })

    @app.route("/api/profiles")
    def api_profiles():
        if _app_ref is None:
            return jsonify([])
        current = _app_ref.registry.current_profile
        return jsonify({
            "current": current.name if current is not None else None,
            "profiles": [profile_to_dict(p) for p in _app_ref.registry.profiles],
        })

    @app.route("/api/profiles", methods=["POST"])
    def api_add_profile():
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        data = request.json or {}
        name = str(data.get("name", "")).strip()
        if not name:
            return jsonify({"error": "name required"}), 400
        if len(name) > MAX_PROFILE_NAME_LENGTH:
            return jsonify({"error": f"name longer than {MAX_PROFILE_NAME_LENGTH} characters"}), 400
        profile = _app_ref.registry.add_profile(name)
        if profile is None:
            return jsonify({"error": f"profile {name!r} already exists"}), 409
        return jsonify(profile_to_dict(profile))

    @app.route("/api/profiles/<name>", methods=["DELETE"])
    def api_delete_profile(name):
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        if not _app_ref.registry.safe_delete_profile(name):
            return jsonify({"error": f"cannot delete {name!r}"}), 400
        return jsonify({"ok": True})

    @app.route("/api/profiles/select", methods=["POST"])
    def api_select_profile():
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        data = request.json or {}
        name = data.get("name")
        if not name or not _app_ref.registry.select_profile(name):
            return jsonify({"error": f"unknown profile {name!r}"}), 404
        return jsonify({"ok": True, "current": name})

    @app.route("/api/profile/field", methods=["POST"])
    def api_update_field():
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        data = request.json or {}
        field_name = data.get("field")
        if not field_name:
            return jsonify({"error": "field required"}), 400

        if field_name == "notification":
            try:
                notification_type = NotificationType[str(data.get("type"))]
            except KeyError:
                return jsonify({"error": "unknown notification type"}), 400
            ok = _app_ref.registry.update_notification_setting(notification_type, bool(data.get("value")))
        else:
            ok = _app_ref.registry.update_field(field_name, data.get("value"))

        if not ok:
            return jsonify({"error": f"invalid value for {field_name}"}), 400
        return jsonify({"ok": True})

    @app.route("/api/timer/<action>", methods=["POST"])
    def api_timer(action):
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        if action not in TIMER_ACTIONS:
            return jsonify({"error": f"unknown action {action!r}"}), 404

        controller = _app_ref.controller
        if action == "acknowledge":
            controller.acknowledge_break()
        elif action == "continue":
            controller.continue_work()
        elif action == "snooze":
            controller.snooze(_app_ref.engine.current_notification_type)
        elif action == "emergency":
            shown = controller.trigger_emergency_break()
            return jsonify({"ok": True, "state": _app_ref.engine.state.value, "notification_type": shown.name})
        else:
            getattr(controller, action)()
        return jsonify({"ok": True, "state": _app_ref.engine.state.value})

    @app.route("/api/save", methods=["POST"])
    def api_save():
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        try:
            _app_ref.scheduler.force_save()
        except OSError as exc:
            return jsonify({"error": str(exc)}), 500
        return jsonify({"ok": True})

    @app.route("/api/presets")
    def api_presets():
        return jsonify([
            {"key": key, "name": name, "workMinutes": work, "breakMinutes": brk}
            for key, (name, work, brk) in QUICK_PRESETS.items()
        ])

    @app.route("/api/presets/<key>", methods=["POST"])
    def api_create_preset(key):
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        if key not in QUICK_PRESETS:
            return jsonify({"error": f"unknown preset {key!r}"}), 404
        profile = _app_ref.registry.create_preset_profile(key)
        if profile is None:
            return jsonify({"error": f"could not create preset {key!r}"}), 400
        return jsonify(profile_to_dict(profile))

    @app.route("/api/backup", methods=["POST"])
    def api_backup():
        if _app_ref is None:
            return jsonify({"error": "not ready"}), 500
        fmt = (request.get_json(silent=True) or {}).get("format", "json")
        if fmt not in EXPORT_FORMATS:
            return jsonify({"error": f"unsupported format {fmt!r}"}), 400
        path = _app_ref.registry.quick_backup(fmt=fmt)
        if path is None:
            return jsonify({"error": "backup failed"}), 500
        return jsonify({"ok": True, "path": str(path)})

    return app


def start_dashboard(app_ref, port: int = 5556) -> threading.Thread:
    """Start the Flask dashboard in a daemon thread."""
    global _app_ref
    _app_ref = app_ref
    flask_app = create_flask_app()

    def _run():
        flask_app.run(host="127.0.0.1", port=port, debug=False, use_reloader=False)

    t = threading.Thread(target=_run, daemon=True, name="codebreak-web")
    t.start()
    logger.info("Dashboard started at http://127.0.0.1:%d", port)
    return t


DASHBOARD_HTML = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Code ∧ Break</title>
<style>
  body { font-family: -apple-system, "Segoe UI", sans-serif; background:#1e2430; color:#e6e9ef; margin:0; }
  main { max-width: 640px; margin: 32px auto; padding: 0 16px; }
  h1 { font-weight: 500; }
  .card { background:#2a3140; border-radius:10px; padding:20px; margin-bottom:16px; }
  #time { font-size: 64px; font-variant-numeric: tabular-nums; text-align:center; }
  #phase { text-align:center; color:#9aa4b5; }
  .row { display:flex; gap:8px; flex-wrap:wrap; justify-content:center; margin-top:12px; }
  button { background:#5a7d9a; color:white; border:0; border-radius:6px; padding:8px 14px; cursor:pointer; }
  button.secondary { background:#3b4456; }
  label { display:flex; justify-content:space-between; margin:6px 0; }
  input[type=number] { width:70px; }
  #unsaved { color:#ff9800; font-size: 13px; }
  #stats { color:#9aa5b1; font-size: 13px; margin-bottom: 8px; }
</style>
</head>
<body>
<main>
  <h1>Code ∧ Break</h1>
  <div class="card">
    <div id="time">--:--</div>
    <div id="phase"></div>
    <div id="stats"></div>
    <div class="row">
      <button onclick="timer('toggle')" id="toggle">Start</button>
      <button class="secondary" onclick="timer('stop')">Stop</button>
      <button class="secondary" onclick="timer('acknowledge')">Acknowledge</button>
      <button class="secondary" onclick="timer('continue')">Keep working</button>
      <button class="secondary" onclick="timer('snooze')">Snooze</button>
      <button class="secondary" onclick="timer('emergency')">Break now</button>
    </div>
  </div>
  <div class="card">
    <label>Profile <select id="profiles" onchange="selectProfile(this.value)"></select></label>
    <label>Work minutes <input type="number" id="f-work" min="1" max="180" onchange="setField('workMinutes', parseInt(this.value))"></label>
    <label>Break minutes <input type="number" id="f-break" min="1" max="60" onchange="setField('breakMinutes', parseInt(this.value))"></label>
    <label>Snooze minutes <input type="number" id="f-snooze" min="1" max="30" onchange="setField('snoozeMinutes', parseInt(this.value))"></label>
    <label>Pomodoro mode <input type="checkbox" id="f-pomodoro" onchange="setField('pomodoroMode', this.checked)"></label>
    <label>Sound <input type="checkbox" id="f-sound" onchange="setField('soundEnabled', this.checked)"></label>
    <label>Popup <input type="checkbox" id="f-popup" onchange="setField('popupEnabled', this.checked)"></label>
    <label>Screen flash <input type="checkbox" id="f-flash" onchange="setField('flashEnabled', this.checked)"></label>
    <div class="row">
      <input id="new-name" placeholder="New profile name">
      <button onclick="addProfile()">Save as new</button>
      <button class="secondary" onclick="deleteProfile()">Delete</button>
      <button class="secondary" onclick="save()">Save now</button>
    </div>
    <div id="unsaved"></div>
  </div>
</main>
<script>
async function fetchJSON(url, opts) { const r = await fetch(url, opts); return r.json(); }
function post(url, body) {
  return fetchJSON(url, {method:'POST', headers:{'Content-Type':'application/json'}, body: JSON.stringify(body || {})});
}

async function refreshStatus() {
  const s = await fetchJSON('/api/status');
  if (s.error) return;
  document.getElementById('time').textContent = s.formatted;
  document.getElementById('phase').textContent =
    (s.phase === 'work' ? 'Work' : 'Break') + ' - cycle ' + s.cycle + ' - ' + s.state;
  document.getElementById('toggle').textContent = s.state === 'running' ? 'Pause' : 'Start';
  document.getElementById('unsaved').textContent = s.unsaved ? 'Unsaved changes' : '';
  const st = s.statistics;
  document.getElementById('stats').textContent =
    st.workSessions + ' work / ' + st.breakSessions + ' breaks - ' + st.productivityRatio + '% focused';
  const p = s.profile;
  if (p && document.activeElement.tagName !== 'INPUT') {
    document.getElementById('f-work').value = p.workMinutes;
    document.getElementById('f-break').value = p.breakMinutes;
    document.getElementById('f-snooze').value = p.snoozeMinutes;
    document.getElementById('f-pomodoro').checked = p.pomodoroMode;
    document.getElementById('f-sound').checked = p.soundEnabled;
    document.getElementById('f-popup').checked = p.popupEnabled;
    document.getElementById('f-flash').checked = p.flashEnabled;
  }
}

async function refreshProfiles() {
  const data = await fetchJSON('/api/profiles');
  const sel = document.getElementById('profiles');
  sel.innerHTML = '';
  for (const p of data.profiles || []) {
    const opt = document.createElement('option');
    opt.value = opt.textContent = p.profileName;
    opt.selected = p.profileName === data.current;
    sel.appendChild(opt);
  }
}

async function timer(action) { await post('/api/timer/' + action); refreshStatus(); }
async function setField(field, value) { await post('/api/profile/field', {field, value}); refreshStatus(); }
async function selectProfile(name) { await post('/api/profiles/select', {name}); refreshStatus(); }
async function save() { await post('/api/save'); refreshStatus(); }

async function addProfile() {
  const inp = document.getElementById('new-name');
  const name = inp.value.trim();
  if (!name) return;
  await post('/api/profiles', {name});
  inp.value = '';
  refreshProfiles();
}

async function deleteProfile() {
  const name = document.getElementById('profiles').value;
  await fetchJSON('/api/profiles/' + encodeURIComponent(name), {method:'DELETE'});
  refreshProfiles(); refreshStatus();
}

setInterval(refreshStatus, 1000);
refreshStatus(); refreshProfiles();
</script>
</body>
</html>"""
