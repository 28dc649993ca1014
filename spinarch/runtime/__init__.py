from spinarch.runtime.base import CommandResult, Mount, RuntimeClient, RuntimeCommandError
from spinarch.runtime.docker import DockerRuntime


def create_runtime(backend="docker"):
    if backend == "docker":
        return DockerRuntime()
    raise ValueError(f"Unknown runtime backend: {backend}")


__all__ = [
    "CommandResult",
    "DockerRuntime",
    "Mount",
    "RuntimeClient",
    "RuntimeCommandError",
    "create_runtime",
]
