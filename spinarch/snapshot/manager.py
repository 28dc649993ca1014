from datetime import datetime

from spinarch.errors import RestoreError, SnapshotError
from spinarch.runtime import Mount, RuntimeCommandError
from spinarch.snapshot.base import (
    ARCHIVE_SUFFIX,
    SNAPSHOT_MOUNT,
    STATE_MOUNT,
    Snapshot,
    archive_command,
    extract_command,
    parse_snapshot,
    snapshot_name,
)


class SnapshotManager:
    """Archives and restores a persistent project's state directory.

    Both operations run tar in a throwaway, network-isolated helper container
    with the snapshot directory and the state directory bind-mounted. Callers
    hold the lifecycle guard; nothing here serializes on its own.
    """

    def __init__(self, runtime, controller, project, settings, console):
        self.runtime = runtime
        self.controller = controller
        self.project = project
        self.settings = settings
        self.console = console

    def _mounts(self):
        return [
            Mount(source=str(self.project.snapshot_dir), target=SNAPSHOT_MOUNT, kind="bind"),
            Mount(source=str(self.project.dir), target=STATE_MOUNT, kind="bind"),
        ]

    async def _helper(self, args):
        return await self.runtime.run(
            self.settings.helper_image, args,
            mounts=self._mounts(), network=False, on_output=self.console.node,
        )

    async def snapshot(self):
        """Stop the node, archive its state, and start it again.

        The restart is attempted whether or not the archive succeeded. A
        snapshot failure is still raised as SnapshotError once the node is
        back up; a failed restart raises NodeStartError.
        """
        if not self.project.persistent:
            return None

        self.console.app("Taking snapshot...")
        failure = None
        snapshot = None
        if await self.controller.stop():
            try:
                snapshot = await self._archive()
                self.console.app(f"Snapshot saved to {snapshot.archive_path}")
            except SnapshotError as e:
                failure = e
        else:
            failure = SnapshotError("node did not stop cleanly, state was not archived")

        if failure:
            self.console.error(f"Failed to take snapshot: {failure}")

        # Resume node
        await self.controller.start()

        if failure:
            raise failure
        return snapshot

    async def _archive(self):
        try:
            self.project.snapshot_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SnapshotError(f"Could not create {self.project.snapshot_dir}: {e}") from e

        created_at = datetime.now()
        name = snapshot_name(self.project.id, created_at)
        try:
            result = await self._helper(archive_command(name))
        except RuntimeCommandError as e:
            raise SnapshotError(str(e)) from e
        if not result.ok:
            raise SnapshotError(f"tar exited with {result.exit_code}")

        return Snapshot(
            name=name,
            project_id=self.project.id,
            created_at=created_at,
            archive_path=self.project.snapshot_dir / name,
        )

    async def restore(self, name):
        """Replace the state directory with a snapshot. The node is not restarted."""
        if not self.project.persistent:
            return None
        if self.controller.is_running:
            raise RestoreError("Stop the node before restoring a snapshot")

        archive_name = name if name.endswith(ARCHIVE_SUFFIX) else f"{name}{ARCHIVE_SUFFIX}"
        if "/" in archive_name or "\\" in archive_name or archive_name.startswith("."):
            raise RestoreError(f"Invalid snapshot name: {name!r}")
        archive_path = self.project.snapshot_dir / archive_name
        if not archive_path.is_file():
            raise RestoreError(f"Snapshot {archive_name} not found in {self.project.snapshot_dir}")

        self.console.app(f"Restoring snapshot {archive_name}...")
        try:
            result = await self._helper(extract_command(archive_name))
        except RuntimeCommandError as e:
            raise RestoreError(str(e)) from e
        if not result.ok:
            raise RestoreError(f"restore helper exited with {result.exit_code}")

        self.console.app(f"Snapshot restored to {self.project.dir}")
        return parse_snapshot(archive_path, self.project.id) or Snapshot(
            name=archive_name,
            project_id=self.project.id,
            created_at=datetime.fromtimestamp(archive_path.stat().st_mtime),
            archive_path=archive_path,
        )
