"""Error taxonomy for devnet lifecycle phases.

Every error raised out of a lifecycle component carries the phase that
failed, so the operator sees "genesis failed: ..." rather than a bare
docker exit code.
"""


class DevnetError(Exception):
    phase = "devnet"

    def __init__(self, message, phase=None):
        super().__init__(message)
        if phase:
            self.phase = phase

    def describe(self):
        return f"{self.phase} failed: {self}"


class ConfigError(DevnetError, ValueError):
    phase = "config"


class InitError(DevnetError):
    phase = "genesis"


class ProvisionError(DevnetError):
    phase = "accounts"


class NodeStartError(DevnetError):
    phase = "node-start"


class NodeStopError(DevnetError):
    phase = "node-stop"


class SnapshotError(DevnetError):
    phase = "snapshot"


class RestoreError(DevnetError):
    phase = "restore"
