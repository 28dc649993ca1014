import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from spinarch.config import SPINARCH_HOME
from spinarch.errors import ConfigError, DevnetError
from spinarch.runtime import Mount, RuntimeCommandError

NODE_HOME = "/root/.archway"
VOLUME_NAME = "vol_spinarch"
CONTAINER_NAME = "spinarch_archwayd"
ACCOUNTS_FILE = "spinarch_accounts.json"
SNAPSHOT_DIRNAME = ".snapshots"

_UNSAFE_CHARS = re.compile(r"[^0-9a-zA-Z_-]")


def sanitize_project_id(raw):
    return _UNSAFE_CHARS.sub("", raw)


def random_project_id():
    return f"devnet_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class VolumeBinding:
    """How the node's data directory is exposed to the runtime."""

    kind: str  # "bind" for persistent projects, "volume" otherwise
    source: str
    target: str = NODE_HOME

    def as_mount(self):
        return Mount(source=self.source, target=self.target, kind=self.kind)


@dataclass(frozen=True)
class Project:
    id: str
    dir: Path
    chain_id: str
    persistent: bool

    @classmethod
    def create(cls, project_id=None, chain_id="spinarch-1", home=None):
        """Build a project. Persistent iff an explicit project ID is given."""
        home = Path(home) if home else SPINARCH_HOME
        if project_id is not None:
            clean = sanitize_project_id(project_id)
            if not clean:
                raise ConfigError(f"Project ID {project_id!r} has no usable characters")
            return cls(id=clean, dir=(home / clean).resolve(), chain_id=chain_id, persistent=True)
        generated = random_project_id()
        return cls(id=generated, dir=(home / generated).resolve(), chain_id=chain_id, persistent=False)

    @property
    def genesis_path(self):
        return self.dir / "config" / "genesis.json"

    @property
    def accounts_path(self):
        return self.dir / ACCOUNTS_FILE

    @property
    def snapshot_dir(self):
        return self.dir.parent / SNAPSHOT_DIRNAME

    @property
    def binding(self):
        if self.persistent:
            return VolumeBinding(kind="bind", source=str(self.dir))
        return VolumeBinding(kind="volume", source=VOLUME_NAME)


async def prepare_workspace(project, runtime, console):
    """Get the state location ready before genesis runs."""
    if project.persistent:
        console.app(f"Starting with persistent state... ({project.dir})")
        project.dir.mkdir(parents=True, exist_ok=True)
    else:
        console.app(
            "Starting with temporary state... (set --project-id to enable persistent state)"
        )
        # Leftover volume from a run that never reached stop()
        try:
            await runtime.remove_volume(VOLUME_NAME)
        except RuntimeCommandError as e:
            raise DevnetError(str(e), phase="workspace") from e
