"""Devnet audit logging.

Appends structured JSON entries to ~/.spinarch/logs.jsonl.
Each entry records a lifecycle event (start, snapshot, restore, stop) with
timestamp, project ID and outcome.
"""

import json
from datetime import datetime

from spinarch.config import SPINARCH_HOME

LOGS_FILE = SPINARCH_HOME / "logs.jsonl"


def write_log(entry):
    """Append a lifecycle log entry."""
    LOGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    entry["timestamp"] = datetime.now().isoformat()
    with open(LOGS_FILE, "a") as f:
        f.write(json.dumps(entry) + "\n")


def read_logs(project_id=None):
    """Return logged entries oldest-first, optionally filtered to one project."""
    if not LOGS_FILE.exists():
        return []
    entries = []
    for line in LOGS_FILE.read_text().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if project_id and entry.get("project") != project_id:
            continue
        entries.append(entry)
    return entries
