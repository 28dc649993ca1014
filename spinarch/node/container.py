import asyncio

from spinarch.errors import NodeStartError, NodeStopError
from spinarch.node.base import RPC_HOST, RPC_PORT, NodeRunner, start_args
from spinarch.project import CONTAINER_NAME, VOLUME_NAME
from spinarch.runtime import RuntimeCommandError

VOLUME_REMOVE_ATTEMPTS = 5
VOLUME_REMOVE_DELAY = 0.5


class ContainerRunner(NodeRunner):
    """Runs the node as a long-lived container with its RPC port on loopback."""

    name = "container"

    def __init__(self, runtime, project, settings, console):
        self.runtime = runtime
        self.project = project
        self.settings = settings
        self.console = console
        self.container_id = None
        self._log_task = None
        self._stopping = False

    async def start(self):
        try:
            self.container_id = await self.runtime.start_container(
                CONTAINER_NAME,
                self.settings.image,
                start_args(self.project, self.settings, "0.0.0.0"),
                mounts=[self.project.binding.as_mount()],
                ports=[(RPC_HOST, RPC_PORT, RPC_PORT)],
            )
        except RuntimeCommandError as e:
            raise NodeStartError(str(e)) from e
        self._stopping = False
        self._log_task = asyncio.create_task(self._follow_logs())

    async def _follow_logs(self):
        try:
            await self.runtime.stream_logs(CONTAINER_NAME, self.console.node)
        except RuntimeCommandError as e:
            self.console.notice(f"Node log stream ended: {e}")
        # `docker logs -f` returns once the container is gone
        if not self._stopping:
            self.console.app("Node container exited")
            self.container_id = None
            self._exited(None)

    async def stop(self):
        self._stopping = True
        errors = []
        try:
            # The container is started with --rm, so stopping also removes it
            await self.runtime.stop_container(CONTAINER_NAME)
        except RuntimeCommandError as e:
            errors.append(str(e))
        self.container_id = None

        if self._log_task:
            if not self._log_task.done():
                self._log_task.cancel()
            await asyncio.gather(self._log_task, return_exceptions=True)
            self._log_task = None

        if not self.project.persistent:
            try:
                await self._remove_volume()
            except RuntimeCommandError as e:
                errors.append(str(e))

        if errors:
            raise NodeStopError("; ".join(errors))

    async def _remove_volume(self):
        # Auto-removal of the stopped container can lag behind `docker stop`,
        # and the volume stays in use until it finishes.
        for attempt in range(VOLUME_REMOVE_ATTEMPTS):
            try:
                await self.runtime.remove_volume(VOLUME_NAME)
                return
            except RuntimeCommandError:
                if attempt == VOLUME_REMOVE_ATTEMPTS - 1:
                    raise
                await asyncio.sleep(VOLUME_REMOVE_DELAY)

    def is_running(self):
        return self.container_id is not None
