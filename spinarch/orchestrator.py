import asyncio

from rich.table import Table

from spinarch.accounts import AccountProvisioner, AccountStore
from spinarch.control import ControlKind
from spinarch.errors import DevnetError, RestoreError
from spinarch.genesis import GenesisInitializer
from spinarch.guard import LifecycleGuard
from spinarch.log import write_log
from spinarch.node import NodeLifecycleController
from spinarch.project import prepare_workspace
from spinarch.render import StageTimer
from spinarch.runtime import RuntimeCommandError
from spinarch.snapshot import SnapshotManager, list_snapshots


class DevnetOrchestrator:
    """Brings a devnet up and serves lifecycle requests against it.

    bootstrap(): workspace → image → accounts config → genesis → provisioning
    → node start, as one hard sequence. Afterwards request_start/stop/
    snapshot/restore dispatch guarded tasks; a request made while another
    is in flight (or before bootstrap finished) is ignored.
    """

    def __init__(self, project, settings, runtime, console):
        self.project = project
        self.settings = settings
        self.runtime = runtime
        self.console = console

        self.guard = LifecycleGuard()
        self.store = AccountStore(project.accounts_path)
        self.genesis = GenesisInitializer(runtime, settings, console)
        self.provisioner = AccountProvisioner(runtime, settings, console, store=self.store)
        self.controller = NodeLifecycleController(runtime, project, settings, console)
        self.snapshots = SnapshotManager(runtime, self.controller, project, settings, console)

        self.accounts = []
        self.ready = False
        self.last_error = None
        self._tasks = set()

    # ------------------------------------------------------------------
    # Startup sequence

    def load_config(self):
        """Load previously generated accounts for a persistent project."""
        if not self.project.persistent:
            return self.accounts
        self.accounts = self.store.load()
        if not self.accounts:
            self.console.app("Creating new config...")
        return self.accounts

    async def ensure_image(self, update=False):
        image = self.settings.image
        try:
            if update or not await self.runtime.image_exists(image):
                self.console.app(f"Pulling image {image}...")
                await self.runtime.pull_image(image, on_output=self.console.node)
        except RuntimeCommandError as e:
            raise DevnetError(str(e), phase="image") from e

    async def bootstrap(self, reset_state=False, update_image=False, restore=None):
        if not self.guard.try_acquire("bootstrap"):
            raise DevnetError("a lifecycle operation is already in progress", phase="bootstrap")

        timer = StageTimer(self.console)
        try:
            await prepare_workspace(self.project, self.runtime, self.console)
            await self.ensure_image(update_image)
            timer.mark("image")

            self.load_config()
            await self.genesis.ensure_genesis(self.project)
            timer.mark("genesis")

            self.accounts = await self.provisioner.provision(
                self.project, self.accounts, self.settings.num_accounts, self.settings.balance,
            )
            timer.mark("accounts")

            if restore:
                reset_state = await self._restore_before_start(restore, reset_state)

            await self.controller.start(reset_state=reset_state)
            timer.mark("start")
        finally:
            self.guard.release()

        self.ready = True
        write_log({
            "event": "start",
            "project": self.project.id,
            "chain_id": self.project.chain_id,
            "persistent": self.project.persistent,
            "runner": self.controller.runner.name if self.controller.runner else None,
            "accounts": len(self.accounts),
            "result": "ok",
        })

    async def _restore_before_start(self, name, reset_state):
        if not self.project.persistent:
            self.console.notice("Snapshots need a persistent project (set --project-id); ignoring --restore")
            return reset_state
        if reset_state:
            self.console.notice("--restore given, skipping --reset-state")
        try:
            await self.snapshots.restore(name)
            write_log({"event": "restore", "project": self.project.id, "snapshot": name, "result": "ok"})
        except RestoreError as e:
            self.console.error(e.describe())
            write_log({"event": "restore", "project": self.project.id, "snapshot": name,
                       "result": "failed", "error": str(e)})
        return False

    # ------------------------------------------------------------------
    # Guarded requests from the control surface

    def request_start(self):
        return self._dispatch("start", self._start)

    def request_stop(self):
        return self._dispatch("stop", self._stop)

    def request_snapshot(self):
        return self._dispatch("snapshot", self._snapshot)

    def request_restore(self, name):
        return self._dispatch("restore", lambda: self._restore(name))

    def _dispatch(self, name, operation):
        if not self.ready:
            self.console.notice(f"Ignoring {name}: devnet is still starting")
            return False
        if not self.guard.try_acquire(name):
            self.console.notice(f"Ignoring {name}: {self.guard.owner} in progress")
            return False
        task = asyncio.create_task(self._run_guarded(name, operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run_guarded(self, name, operation):
        try:
            await operation()
        except DevnetError as e:
            self.last_error = e
            self.console.error(e.describe())
            write_log({"event": name, "project": self.project.id, "result": "failed", "error": str(e)})
        finally:
            self.guard.release()

    async def _start(self):
        if self.controller.is_running:
            self.console.notice("Node is already running")
            return
        await self.controller.start()
        write_log({"event": "start", "project": self.project.id, "result": "ok"})

    async def _stop(self):
        clean = await self.controller.stop()
        write_log({"event": "stop", "project": self.project.id, "result": "ok" if clean else "failed"})

    async def _snapshot(self):
        if not self.project.persistent:
            self.console.notice("Snapshots need a persistent project (set --project-id)")
            return
        snapshot = await self.snapshots.snapshot()
        write_log({"event": "snapshot", "project": self.project.id,
                   "snapshot": snapshot.name, "result": "ok"})

    async def _restore(self, name):
        if not self.project.persistent:
            self.console.notice("Snapshots need a persistent project (set --project-id)")
            return

        was_running = self.controller.is_running
        if was_running and not await self.controller.stop():
            raise RestoreError("node did not stop cleanly, state was not restored")

        failure = None
        try:
            await self.snapshots.restore(name)
            write_log({"event": "restore", "project": self.project.id, "snapshot": name, "result": "ok"})
        except RestoreError as e:
            failure = e

        if was_running:
            await self.controller.start()
        if failure:
            raise failure

    def show_snapshots(self):
        snapshots = list_snapshots(self.project)
        if not snapshots:
            self.console.notice("No snapshots.")
            return snapshots
        table = Table(title=f"Snapshots — {self.project.id}")
        table.add_column("Name", style="bold cyan")
        table.add_column("Created", style="dim")
        for s in snapshots:
            table.add_row(s.name, s.created_at.strftime("%Y-%m-%d %H:%M:%S"))
        self.console.account(table)
        return snapshots

    # ------------------------------------------------------------------
    # Event loop and shutdown

    async def run(self, source):
        """Serve control events until the source terminates, then shut down."""
        async for event in source.events():
            if event.kind is ControlKind.START:
                self.request_start()
            elif event.kind is ControlKind.STOP:
                self.request_stop()
            elif event.kind is ControlKind.SNAPSHOT:
                self.request_snapshot()
            elif event.kind is ControlKind.RESTORE:
                self.request_restore(event.argument)
            elif event.kind is ControlKind.LIST:
                self.show_snapshots()
        await self.shutdown()

    async def wait_idle(self):
        """Wait for every dispatched request to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def shutdown(self):
        """Stop the node, bounded by the stop timeout. Never blocks forever."""
        timeout = self.settings.stop_timeout
        if self._tasks:
            self.console.app("Waiting for the running operation to finish...")
            _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                self.console.error(f"Operation did not finish within {timeout}s, cancelled")
                await asyncio.gather(*pending, return_exceptions=True)

        self.console.app("Stopping node...")
        try:
            # The native runner waits stop_timeout itself before killing
            clean = await asyncio.wait_for(self.controller.stop(), timeout=timeout * 2)
        except asyncio.TimeoutError:
            clean = False
            self.console.error(f"Node did not stop within {timeout * 2:g}s, exiting anyway")

        self.ready = False
        write_log({"event": "stop", "project": self.project.id, "result": "ok" if clean else "failed"})
