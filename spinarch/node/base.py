from abc import ABC, abstractmethod

RPC_HOST = "127.0.0.1"
RPC_PORT = 26657


def start_args(project, settings, rpc_host):
    """Arguments for the node binary's `start` subcommand."""
    return [
        "start",
        "--moniker", project.id,
        "--minimum-gas-prices", f"0{settings.stake_denom}",
        "--rpc.laddr", f"tcp://{rpc_host}:{RPC_PORT}",
    ]


class NodeRunner(ABC):
    """Base interface for the ways a node can be run.

    Implementations: ContainerRunner (docker), NativeRunner (local binary).
    """

    name = "node"

    # Called as on_exit(runner, exit_code) when the node goes away without stop()
    on_exit = None

    @abstractmethod
    async def start(self):
        """Launch the node. Returns once the launch is confirmed.

        Raises NodeStartError if the node could not be launched.
        """
        pass

    @abstractmethod
    async def stop(self):
        """Stop the node and wait for it to go away.

        Raises NodeStopError if the node could not be stopped cleanly.
        """
        pass

    @abstractmethod
    def is_running(self):
        pass

    def _exited(self, exit_code):
        if self.on_exit:
            self.on_exit(self, exit_code)
