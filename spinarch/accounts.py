import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from spinarch.errors import ProvisionError
from spinarch.render import accounts_table, mnemonics_table
from spinarch.runtime import RuntimeCommandError

KEYRING = ["--keyring-backend", "test"]
VALIDATOR_STAKE = 100_000_000


@dataclass(frozen=True)
class Account:
    index: int
    name: str
    address: str
    mnemonic: str

    @classmethod
    def from_key_output(cls, index, output):
        """Parse the JSON emitted by `keys add --output json`.

        The binary may print warnings around the JSON document, so the last
        line that decodes to an object with an address wins.
        """
        candidates = [line.strip() for line in output.splitlines() if line.strip().startswith("{")]
        candidates.append(output.strip())
        for text in reversed(candidates):
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict) and payload.get("address"):
                return cls(
                    index=index,
                    name=str(payload.get("name", index)),
                    address=payload["address"],
                    mnemonic=payload.get("mnemonic", ""),
                )
        raise ValueError(f"No key JSON found in output for account {index}")

    def to_dict(self):
        return {"name": self.name, "address": self.address, "mnemonic": self.mnemonic}


class AccountStore:
    """Persisted account list for a project (a JSON array, written once)."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self):
        """Return persisted accounts in stored order, or [] if none are usable.

        A readable list with an incomplete entry raises ProvisionError; it is
        not silently regenerated, since genesis already funds those addresses.
        """
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError):
            return []
        if not isinstance(raw, list):
            return []
        accounts = []
        for i, item in enumerate(raw):
            try:
                accounts.append(Account(
                    index=i, name=str(item["name"]), address=item["address"], mnemonic=item["mnemonic"],
                ))
            except (KeyError, TypeError) as e:
                raise ProvisionError(
                    f"{self.path} is malformed: entry {i} needs name, address and mnemonic"
                ) from e
        return accounts

    def save(self, accounts):
        """Atomically replace the account file: temp file, fsync, rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([a.to_dict() for a in accounts], indent=2)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".accounts-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class AccountProvisioner:
    """Generates and funds test accounts, then creates the validator gentx.

    Every step is a separate one-shot container sharing the project's mount;
    later steps read keyring and genesis files written by earlier ones, so
    they run strictly in sequence.
    """

    def __init__(self, runtime, settings, console, store=None):
        self.runtime = runtime
        self.settings = settings
        self.console = console
        self.store = store

    async def provision(self, project, accounts, count, balance):
        if accounts:
            self.display_accounts(accounts)
            return accounts

        denom = self.settings.stake_denom
        mounts = [project.binding.as_mount()]

        self.console.app(f"Generating {count} accounts...")
        generated = []
        for i in range(count):
            result = await self._step(
                f"generate key {i}",
                ["keys", "add", str(i), *KEYRING, "--output", "json"],
                mounts,
                stream=False,
            )
            try:
                generated.append(Account.from_key_output(i, result.output))
            except ValueError as e:
                raise ProvisionError(str(e)) from e

        self.console.app(f"Adding {count} accounts to the genesis file...")
        for i in range(count):
            await self._step(
                f"fund account {i}",
                ["add-genesis-account", str(i), f"{balance}{denom}", *KEYRING, "--output", "json"],
                mounts,
            )

        self.console.app("Creating validator...")
        await self._step(
            "create validator gentx",
            ["gentx", "0", f"{VALIDATOR_STAKE}{denom}", "--chain-id", project.chain_id,
             *KEYRING, "--output", "json"],
            mounts,
            network=True,
        )

        self.console.app("Collecting gentxs...")
        await self._step("collect gentxs", ["collect-gentxs"], mounts)

        if project.persistent:
            store = self.store or AccountStore(project.accounts_path)
            try:
                store.save(generated)
            except OSError as e:
                raise ProvisionError(f"Could not write {store.path}: {e}") from e

        self.display_accounts(generated)
        return generated

    async def _step(self, label, args, mounts, network=False, stream=True):
        on_output = self.console.node if stream else None
        try:
            result = await self.runtime.run(
                self.settings.image, args, mounts=mounts, network=network, on_output=on_output,
            )
        except RuntimeCommandError as e:
            raise ProvisionError(f"{label}: {e}") from e
        if not result.ok:
            tail = result.output.strip().splitlines()[-1:] or ["no output"]
            raise ProvisionError(f"{label}: exited with {result.exit_code}: {tail[0]}")
        return result

    def display_accounts(self, accounts):
        ordered = sorted(accounts, key=lambda a: a.index)
        self.console.account(accounts_table(ordered))
        self.console.account(mnemonics_table(ordered))
