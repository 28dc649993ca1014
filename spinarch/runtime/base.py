from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Mount:
    """A volume or bind mount exposed to a container."""

    source: str
    target: str
    kind: str = "bind"  # "bind" or "volume"


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    output: str

    @property
    def ok(self):
        return self.exit_code == 0


class RuntimeCommandError(RuntimeError):
    """A container runtime command could not be carried out."""

    def __init__(self, command, exit_code=None, output=""):
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output
        detail = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"`{' '.join(self.command)}` exited with {exit_code}: {detail}")


class RuntimeClient(ABC):
    """Base interface for container runtime backends.

    Implementations: DockerRuntime (docker CLI).
    """

    @abstractmethod
    async def run(self, image, args, mounts=(), network=False, on_output=None):
        """Run a one-shot, auto-removed container and wait for it to exit.

        Args:
            image: Image to run. Its entrypoint receives ``args``.
            args: Command arguments.
            mounts: Mounts to attach.
            network: Network access is disabled unless True.
            on_output: Called with each output line as it arrives.

        Returns a CommandResult. A non-zero exit is reported, not raised.
        """
        pass

    @abstractmethod
    async def start_container(self, name, image, args, mounts=(), ports=()):
        """Start a detached, auto-removed container under a fixed name.

        ports is a sequence of (host_ip, host_port, container_port).
        Returns the container ID. Raises RuntimeCommandError on failure.
        """
        pass

    @abstractmethod
    async def stream_logs(self, name, on_output):
        """Follow a container's log stream until it ends."""
        pass

    @abstractmethod
    async def stop_container(self, name):
        """Stop a container by name. Returns False if it was not running."""
        pass

    @abstractmethod
    async def volume_exists(self, name):
        pass

    @abstractmethod
    async def remove_volume(self, name):
        """Remove a named volume. Missing volumes are a no-op."""
        pass

    @abstractmethod
    async def image_exists(self, image):
        pass

    @abstractmethod
    async def pull_image(self, image, on_output=None):
        pass
