import asyncio
import io
import json
import shlex
import shutil
import tarfile
from dataclasses import dataclass
from pathlib import Path

import pytest
from rich.console import Console

import spinarch.config
import spinarch.log
import spinarch.project
from spinarch.config import DEFAULT_CONFIG, resolve_settings
from spinarch.project import NODE_HOME, Project
from spinarch.render import DevnetConsole
from spinarch.runtime import CommandResult, RuntimeClient, RuntimeCommandError


@dataclass
class Call:
    method: str
    image: str = None
    args: tuple = ()
    mounts: tuple = ()
    network: bool = False


def _source(mounts, target):
    for mount in mounts:
        if mount.target == target:
            return Path(mount.source)
    return None


class FakeRuntime(RuntimeClient):
    """In-memory runtime that records calls and emulates the node CLI.

    - `init` writes config/genesis.json into a bind-mounted node home.
    - `keys add <i>` prints key JSON.
    - The tar helper commands really archive/extract the bind-mounted dirs.
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.holds = {}
        self.images = {"archwaynetwork/archwayd"}
        self.volumes = set()
        self.containers = {}
        self.start_error = None
        self.stop_error = None
        self._log_ends = {}

    def fail(self, *prefix, exit_code=1):
        """Make one-shot runs whose args start with prefix exit non-zero."""
        self.failures[tuple(prefix)] = exit_code

    def hold(self, word):
        """Block one-shot runs whose first arg is word until the event is set."""
        event = asyncio.Event()
        self.holds[word] = event
        return event

    def runs(self, word=None):
        return [c for c in self.calls if c.method == "run" and (word is None or c.args[0] == word)]

    def methods(self):
        return [c.method for c in self.calls]

    async def run(self, image, args, mounts=(), network=False, on_output=None):
        args = tuple(args)
        self.calls.append(Call("run", image, args, tuple(mounts), network))
        for mount in mounts:
            if mount.kind == "volume":
                self.volumes.add(mount.source)
        if args[0] in self.holds:
            await self.holds[args[0]].wait()
        for prefix, code in self.failures.items():
            if args[:len(prefix)] == prefix:
                return CommandResult(code, "Error: simulated failure\n")

        output = self._emulate(args, mounts)
        if on_output:
            for line in output.splitlines():
                on_output(line)
        return CommandResult(0, output)

    def _emulate(self, args, mounts):
        home = _source([m for m in mounts if m.kind == "bind"], NODE_HOME)
        if args[0] == "init":
            if home:
                (home / "config").mkdir(parents=True, exist_ok=True)
                (home / "config" / "genesis.json").write_text(json.dumps({"chain_id": args[3]}))
            return "init ok\n"
        if args[:2] == ("keys", "add"):
            index = args[2]
            return json.dumps({
                "name": index,
                "type": "local",
                "address": f"archway1fakeaddress{index}",
                "pubkey": "{}",
                "mnemonic": f"word{index} " * 3 + "end",
            }) + "\n"
        if args[0] == "tar":
            archive = _source(mounts, "/ss") / args[2].split("/ss/")[-1]
            with tarfile.open(archive, "w") as tar:
                tar.add(_source(mounts, "/state"), arcname="state")
            return "state/\n"
        if args[0] == "sh":
            archive = _source(mounts, "/ss") / shlex.split(args[2])[-1].split("/ss/", 1)[-1]
            state = _source(mounts, "/state")
            for child in state.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            with tarfile.open(archive) as tar:
                for member in tar.getmembers():
                    dest = state / Path(member.name).relative_to("state")
                    if member.isdir():
                        dest.mkdir(parents=True, exist_ok=True)
                    elif member.isfile():
                        dest.parent.mkdir(parents=True, exist_ok=True)
                        dest.write_bytes(tar.extractfile(member).read())
            return "state/\n"
        return ""

    async def start_container(self, name, image, args, mounts=(), ports=()):
        self.calls.append(Call("start_container", image, tuple(args), tuple(mounts)))
        if self.start_error:
            raise self.start_error
        if name in self.containers:
            raise RuntimeCommandError(["docker", "run", "--name", name], 125,
                                      f'Conflict. The container name "/{name}" is already in use')
        for mount in mounts:
            if mount.kind == "volume":
                self.volumes.add(mount.source)
        self.containers[name] = {"image": image, "args": tuple(args), "ports": tuple(ports)}
        self._log_ends[name] = asyncio.Event()
        return f"cid-{name}"

    async def stream_logs(self, name, on_output):
        on_output("node started")
        ended = self._log_ends.get(name)
        if ended is not None:
            await ended.wait()

    async def stop_container(self, name):
        self.calls.append(Call("stop_container", args=(name,)))
        await asyncio.sleep(0)
        if self.stop_error:
            raise self.stop_error
        if name not in self.containers:
            return False
        del self.containers[name]
        self._log_ends.pop(name).set()
        return True

    def crash(self, name):
        """The container exits on its own; its log stream ends."""
        del self.containers[name]
        self._log_ends.pop(name).set()

    async def volume_exists(self, name):
        return name in self.volumes

    async def remove_volume(self, name):
        self.calls.append(Call("remove_volume", args=(name,)))
        self.volumes.discard(name)

    async def image_exists(self, image):
        return image in self.images

    async def pull_image(self, image, on_output=None):
        self.calls.append(Call("pull_image", image))
        self.images.add(image)


@pytest.fixture(autouse=True)
def spinarch_home(tmp_path, monkeypatch):
    home = tmp_path / "home" / ".spinarch"
    monkeypatch.setattr(spinarch.config, "SPINARCH_HOME", home)
    monkeypatch.setattr(spinarch.config, "GLOBAL_CONFIG_FILE", home / "config.json")
    monkeypatch.setattr(spinarch.project, "SPINARCH_HOME", home)
    monkeypatch.setattr(spinarch.log, "LOGS_FILE", home / "logs.jsonl")
    return home


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def console():
    return DevnetConsole(Console(file=io.StringIO(), width=1000, color_system=None))


@pytest.fixture
def output(console):
    """Everything printed to the test console so far."""
    return lambda: console.console.file.getvalue()


@pytest.fixture
def settings():
    return resolve_settings(dict(DEFAULT_CONFIG), num_accounts=3, stop_timeout=2)


@pytest.fixture
def persistent_project(spinarch_home):
    return Project.create("demo", home=spinarch_home)


@pytest.fixture
def ephemeral_project(spinarch_home):
    return Project.create(None, home=spinarch_home)
