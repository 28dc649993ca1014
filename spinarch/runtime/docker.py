import asyncio

from spinarch.runtime.base import CommandResult, RuntimeClient, RuntimeCommandError

DOCKER = "docker"


def _mount_args(mounts):
    args = []
    for mount in mounts:
        args += ["--mount", f"type={mount.kind},source={mount.source},target={mount.target}"]
    return args


def _port_args(ports):
    args = []
    for host_ip, host_port, container_port in ports:
        args += ["-p", f"{host_ip}:{host_port}:{container_port}/tcp"]
    return args


async def _exec(command, on_output=None):
    """Run a docker CLI command, streaming merged stdout/stderr line-by-line.

    Returns (exit_code, full_output).
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError:
        raise RuntimeCommandError(
            command, None, "Docker not found. Install Docker and try again."
        )

    lines = []
    try:
        while True:
            raw = await proc.stdout.readline()
            if not raw:
                break
            line = raw.decode(errors="replace")
            lines.append(line)
            if on_output:
                on_output(line.rstrip("\n"))
        await proc.wait()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.terminate()
            await proc.wait()
        raise
    return proc.returncode, "".join(lines)


class DockerRuntime(RuntimeClient):
    """Container runtime backed by the docker CLI."""

    async def run(self, image, args, mounts=(), network=False, on_output=None):
        command = [DOCKER, "run", "--rm"]
        if not network:
            command.append("--network=none")
        command += _mount_args(mounts)
        command += [image, *args]
        exit_code, output = await _exec(command, on_output)
        return CommandResult(exit_code, output)

    async def start_container(self, name, image, args, mounts=(), ports=()):
        command = [DOCKER, "run", "-d", "--rm", "--name", name]
        command += _mount_args(mounts)
        command += _port_args(ports)
        command += [image, *args]
        exit_code, output = await _exec(command)
        if exit_code != 0:
            raise RuntimeCommandError(command, exit_code, output)
        return output.strip().splitlines()[-1] if output.strip() else ""

    async def stream_logs(self, name, on_output):
        command = [DOCKER, "logs", "-f", name]
        exit_code, output = await _exec(command, on_output)
        if exit_code != 0:
            raise RuntimeCommandError(command, exit_code, output)

    async def stop_container(self, name):
        command = [DOCKER, "stop", name]
        exit_code, output = await _exec(command)
        if exit_code == 0:
            return True
        if "No such container" in output:
            return False
        raise RuntimeCommandError(command, exit_code, output)

    async def volume_exists(self, name):
        command = [DOCKER, "volume", "ls", "-q", "--filter", f"name=^{name}$"]
        exit_code, output = await _exec(command)
        if exit_code != 0:
            raise RuntimeCommandError(command, exit_code, output)
        return name in output.split()

    async def remove_volume(self, name):
        if not await self.volume_exists(name):
            return
        command = [DOCKER, "volume", "rm", name]
        exit_code, output = await _exec(command)
        if exit_code != 0:
            raise RuntimeCommandError(command, exit_code, output)

    async def image_exists(self, image):
        command = [DOCKER, "images", "-q", image]
        exit_code, output = await _exec(command)
        if exit_code != 0:
            raise RuntimeCommandError(
                command, exit_code,
                "Docker is not running or not installed. Start Docker and try again.",
            )
        return bool(output.strip())

    async def pull_image(self, image, on_output=None):
        command = [DOCKER, "pull", image]
        exit_code, output = await _exec(command, on_output)
        if exit_code != 0:
            raise RuntimeCommandError(command, exit_code, output)
