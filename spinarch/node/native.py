import asyncio
import platform
import signal
from pathlib import Path

from spinarch.errors import NodeStartError
from spinarch.node.base import RPC_HOST, NodeRunner, start_args

BIN_DIR = Path(__file__).resolve().parent.parent / "bin"


def native_binary_path(settings):
    """Locate a node binary that can run directly on this host, if any.

    An explicit `native_binary` setting wins. Otherwise the bundled build is
    used on Apple Silicon, where the amd64 container runs under emulation.
    """
    if settings.native_binary:
        path = Path(settings.native_binary).expanduser()
        return path if path.is_file() else None
    if platform.system() == "Darwin" and platform.machine() == "arm64":
        bundled = BIN_DIR / "archwayd-darwin-arm64"
        if bundled.is_file():
            return bundled
    return None


class NativeRunner(NodeRunner):
    """Runs the node binary as a child process against the project directory."""

    name = "native"

    def __init__(self, binary, project, settings, console):
        self.binary = Path(binary)
        self.project = project
        self.settings = settings
        self.console = console
        self.pid = None
        self._proc = None
        self._pumps = []
        self._watcher = None
        self._stopping = False

    async def start(self):
        args = start_args(self.project, self.settings, RPC_HOST) + ["--home", str(self.project.dir)]
        try:
            self._proc = await asyncio.create_subprocess_exec(
                str(self.binary), *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise NodeStartError(f"Failed to spawn {self.binary}: {e}") from e

        self.pid = self._proc.pid
        self._stopping = False
        self._pumps = [
            asyncio.create_task(self._pump(self._proc.stdout)),
            asyncio.create_task(self._pump(self._proc.stderr)),
        ]
        self._watcher = asyncio.create_task(self._watch(self._proc))

    async def _pump(self, stream):
        while True:
            raw = await stream.readline()
            if not raw:
                break
            self.console.node(raw.decode(errors="replace"))

    async def _watch(self, proc):
        exit_code = await proc.wait()
        await asyncio.gather(*self._pumps, return_exceptions=True)
        self.console.app(f"Node process exited with code {exit_code}")
        self.pid = None
        if not self._stopping:
            self._exited(exit_code)

    async def stop(self):
        proc = self._proc
        if proc is None:
            return
        self._stopping = True
        if proc.returncode is None:
            try:
                proc.send_signal(signal.SIGINT)
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.settings.stop_timeout)
            except asyncio.TimeoutError:
                self.console.error(
                    f"Node did not exit within {self.settings.stop_timeout}s, killing pid {self.pid}"
                )
                proc.kill()
                await proc.wait()
        await self._watcher
        self._pumps = []
        self._watcher = None
        self._proc = None
        self.pid = None

    def is_running(self):
        return self._proc is not None and self._proc.returncode is None
