import asyncio
import sys

import pytest

import spinarch.runtime.docker as docker
from spinarch.runtime import DockerRuntime, Mount, RuntimeCommandError, create_runtime


@pytest.fixture
def commands(monkeypatch):
    recorded = []
    responses = {}

    async def fake_exec(command, on_output=None):
        recorded.append(command)
        exit_code, output = responses.get(command[1], (0, ""))
        if on_output:
            for line in output.splitlines():
                on_output(line)
        return exit_code, output

    monkeypatch.setattr(docker, "_exec", fake_exec)
    return recorded, responses


def test_create_runtime():
    assert isinstance(create_runtime(), DockerRuntime)
    with pytest.raises(ValueError):
        create_runtime("podman")


@pytest.mark.asyncio
async def test_one_shot_run_is_network_isolated_by_default(commands):
    recorded, responses = commands
    responses["run"] = (0, "line one\nline two\n")
    lines = []

    result = await DockerRuntime().run(
        "img", ["init", "x"], mounts=[Mount("vol_spinarch", "/root/.archway", "volume")], on_output=lines.append,
    )

    assert result.ok
    assert lines == ["line one", "line two"]
    assert recorded[0] == [
        "docker", "run", "--rm", "--network=none",
        "--mount", "type=volume,source=vol_spinarch,target=/root/.archway",
        "img", "init", "x",
    ]

    await DockerRuntime().run("img", ["gentx"], network=True)
    assert "--network=none" not in recorded[1]


@pytest.mark.asyncio
async def test_non_zero_run_is_reported_not_raised(commands):
    _, responses = commands
    responses["run"] = (2, "Error: bad\n")

    result = await DockerRuntime().run("img", ["init"])

    assert not result.ok
    assert result.exit_code == 2


@pytest.mark.asyncio
async def test_start_container(commands):
    recorded, responses = commands
    responses["run"] = (0, "abc123\n")

    container_id = await DockerRuntime().start_container(
        "spinarch_archwayd", "img", ["start"], ports=[("127.0.0.1", 26657, 26657)],
    )

    assert container_id == "abc123"
    assert recorded[0] == [
        "docker", "run", "-d", "--rm", "--name", "spinarch_archwayd",
        "-p", "127.0.0.1:26657:26657/tcp", "img", "start",
    ]

    responses["run"] = (125, "Conflict. The container name is already in use\n")
    with pytest.raises(RuntimeCommandError, match="already in use"):
        await DockerRuntime().start_container("spinarch_archwayd", "img", ["start"])


@pytest.mark.asyncio
async def test_stop_missing_container(commands):
    _, responses = commands
    responses["stop"] = (1, "Error response from daemon: No such container: spinarch_archwayd\n")

    assert await DockerRuntime().stop_container("spinarch_archwayd") is False


@pytest.mark.asyncio
async def test_volume_management(commands):
    recorded, responses = commands
    responses["volume"] = (0, "vol_spinarch\n")

    assert await DockerRuntime().volume_exists("vol_spinarch")
    await DockerRuntime().remove_volume("vol_spinarch")

    assert recorded[-1] == ["docker", "volume", "rm", "vol_spinarch"]


@pytest.mark.asyncio
async def test_missing_volume_is_not_removed(commands):
    recorded, responses = commands
    responses["volume"] = (0, "")

    await DockerRuntime().remove_volume("vol_spinarch")

    assert all(cmd[:3] != ["docker", "volume", "rm"] for cmd in recorded)


@pytest.mark.asyncio
async def test_image_exists_reports_daemon_down(commands):
    _, responses = commands
    responses["images"] = (1, "Cannot connect to the Docker daemon\n")

    with pytest.raises(RuntimeCommandError, match="not running"):
        await DockerRuntime().image_exists("img")


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
@pytest.mark.asyncio
async def test_exec_streams_merged_output():
    lines = []

    exit_code, output = await docker._exec(["sh", "-c", "echo out; echo err >&2; exit 3"], lines.append)

    assert exit_code == 3
    assert output == "out\nerr\n"
    assert lines == ["out", "err"]


@pytest.mark.asyncio
async def test_exec_without_docker_installed():
    with pytest.raises(RuntimeCommandError, match="Docker not found"):
        await docker._exec(["spinarch-definitely-not-a-binary"])


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
@pytest.mark.asyncio
async def test_cancelled_exec_reaps_child(monkeypatch):
    spawned = []
    create = asyncio.create_subprocess_exec

    async def tracking_create(*args, **kwargs):
        proc = await create(*args, **kwargs)
        spawned.append(proc)
        return proc

    monkeypatch.setattr(docker.asyncio, "create_subprocess_exec", tracking_create)
    task = asyncio.create_task(docker._exec(["sh", "-c", "echo started; sleep 30"]))
    while not spawned:
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.1)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert spawned[0].returncode is not None
