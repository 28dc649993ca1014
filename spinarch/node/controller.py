from enum import Enum

from spinarch.errors import NodeStartError, NodeStopError
from spinarch.node.base import RPC_HOST, RPC_PORT
from spinarch.node.container import ContainerRunner
from spinarch.node.native import NativeRunner, native_binary_path
from spinarch.runtime import RuntimeCommandError


class NodeRunState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class NodeLifecycleController:
    """Starts and stops the node and owns its run state.

    A runner strategy is picked on every start: the native runner when the
    project is persistent and a local binary exists, the container runner
    otherwise. The rest of the system only sees start()/stop().
    """

    def __init__(self, runtime, project, settings, console):
        self.runtime = runtime
        self.project = project
        self.settings = settings
        self.console = console
        self.state = NodeRunState.STOPPED
        self.runner = None

    def select_runner(self):
        runner = None
        if self.project.persistent:
            binary = native_binary_path(self.settings)
            if binary:
                runner = NativeRunner(binary, self.project, self.settings, self.console)
        if runner is None:
            runner = ContainerRunner(self.runtime, self.project, self.settings, self.console)
        runner.on_exit = self._runner_exited
        return runner

    def _runner_exited(self, runner, exit_code):
        if runner is not self.runner or self.state is not NodeRunState.RUNNING:
            return
        # Keep the runner so the next stop() still tears it down
        self.state = NodeRunState.STOPPED
        self.console.error("Node exited unexpectedly. Type 'start' to start it again")

    async def start(self, reset_state=False):
        if self.state is not NodeRunState.STOPPED:
            raise NodeStartError(f"Node is {self.state.value}")

        self.state = NodeRunState.STARTING
        try:
            if self.project.persistent and reset_state:
                await self._reset_state()
            runner = self.select_runner()
            self.console.app(f"Starting node... (RPC on {RPC_HOST}:{RPC_PORT})")
            await runner.start()
        except RuntimeCommandError as e:
            self.state = NodeRunState.STOPPED
            raise NodeStartError(str(e)) from e
        except NodeStartError:
            self.state = NodeRunState.STOPPED
            raise

        self.runner = runner
        self.state = NodeRunState.RUNNING
        if self.project.persistent:
            self.console.app("<Type 'snapshot' to take a snapshot, Ctrl-C to stop node>")
        else:
            self.console.app("<Press Ctrl-C to stop node>")

    async def _reset_state(self):
        self.console.app("Resetting state to the genesis...")
        result = await self.runtime.run(
            self.settings.image,
            ["unsafe-reset-all"],
            mounts=[self.project.binding.as_mount()],
            network=False,
            on_output=self.console.node,
        )
        if not result.ok:
            raise NodeStartError(f"unsafe-reset-all exited with {result.exit_code}")

    async def stop(self):
        """Stop the active runner, best-effort.

        Failures are reported and swallowed; the state always ends STOPPED.
        Returns True if the node stopped cleanly (or was already stopped).
        """
        if self.runner is None:
            self.state = NodeRunState.STOPPED
            return True

        self.state = NodeRunState.STOPPING
        clean = True
        try:
            await self.runner.stop()
        except (NodeStopError, RuntimeCommandError, OSError) as e:
            clean = False
            self.console.error(f"Failed to stop node: {e}")
        finally:
            self.runner = None
            self.state = NodeRunState.STOPPED
        return clean

    @property
    def is_running(self):
        return (
            self.state is NodeRunState.RUNNING
            and self.runner is not None
            and self.runner.is_running()
        )
