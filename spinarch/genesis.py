from spinarch.errors import InitError
from spinarch.runtime import RuntimeCommandError


class GenesisInitializer:

    def __init__(self, runtime, settings, console):
        self.runtime = runtime
        self.settings = settings
        self.console = console

    async def ensure_genesis(self, project):
        """Create the genesis file for a project, at most once if persistent.

        Ephemeral projects start from an empty volume, so init always runs.
        Returns True if init ran.
        """
        if project.persistent and project.genesis_path.exists():
            return False

        self.console.app(f"Generating genesis file for {project.chain_id}...")
        try:
            result = await self.runtime.run(
                self.settings.image,
                ["init", project.id, "--chain-id", project.chain_id],
                mounts=[project.binding.as_mount()],
                network=False,
                on_output=self.console.node,
            )
        except RuntimeCommandError as e:
            raise InitError(str(e)) from e
        if not result.ok:
            raise InitError(f"init exited with {result.exit_code}")
        return True
