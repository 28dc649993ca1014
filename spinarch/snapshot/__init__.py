from spinarch.snapshot.base import Snapshot, list_snapshots, snapshot_name
from spinarch.snapshot.manager import SnapshotManager

__all__ = ["Snapshot", "SnapshotManager", "list_snapshots", "snapshot_name"]
