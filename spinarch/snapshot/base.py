import shlex
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"
ARCHIVE_SUFFIX = ".tar"

# Mount points inside the helper container
SNAPSHOT_MOUNT = "/ss"
STATE_MOUNT = "/state"


@dataclass(frozen=True)
class Snapshot:
    name: str
    project_id: str
    created_at: datetime
    archive_path: Path


def snapshot_name(project_id, when):
    return f"{project_id}_{when.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"


def parse_snapshot(path, project_id):
    """Build a Snapshot from an archive path, or None if it isn't this project's."""
    path = Path(path)
    prefix = f"{project_id}_"
    if not path.name.startswith(prefix) or path.suffix != ARCHIVE_SUFFIX:
        return None
    stamp = path.name[len(prefix):-len(ARCHIVE_SUFFIX)]
    try:
        created_at = datetime.strptime(stamp, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return Snapshot(name=path.name, project_id=project_id, created_at=created_at, archive_path=path)


def list_snapshots(project):
    """List a project's snapshots. Name order is also chronological order."""
    if not project.snapshot_dir.exists():
        return []
    snapshots = []
    for entry in sorted(project.snapshot_dir.iterdir(), key=lambda p: p.name):
        if not entry.is_file():
            continue
        snapshot = parse_snapshot(entry, project.id)
        if snapshot:
            snapshots.append(snapshot)
    return snapshots


def archive_command(archive_name):
    """Helper-container command that archives the whole state directory."""
    return ["tar", "cvf", f"{SNAPSHOT_MOUNT}/{archive_name}", STATE_MOUNT]


def extract_command(archive_name):
    """Helper-container command that replaces the state directory with an archive."""
    archive = shlex.quote(f"{SNAPSHOT_MOUNT}/{archive_name}")
    return [
        "sh", "-c",
        f"find {STATE_MOUNT} -mindepth 1 -delete && cd / && tar xvf {archive}",
    ]
