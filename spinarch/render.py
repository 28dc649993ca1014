"""Operator console for a running devnet.

Three output channels stand in for the panes of a terminal dashboard:
    app      : lifecycle messages from spinarch itself
    node     : output streamed from the node, helper containers and image pulls
    account  : the generated account listing
"""

import time

from rich.console import Console
from rich.table import Table
from rich.text import Text


class DevnetConsole:

    def __init__(self, console=None):
        self.console = console or Console()

    def app(self, message):
        self.console.print(Text(str(message)))

    def node(self, line):
        line = line.rstrip()
        if line:
            self.console.print(Text(f"│ {line}", style="dim"))

    def account(self, renderable):
        self.console.print(renderable)

    def error(self, message):
        self.console.print(Text(str(message), style="bold red"))

    def notice(self, message):
        self.console.print(Text(str(message), style="dim"))


def accounts_table(accounts):
    table = Table(title="Available Accounts")
    table.add_column("#", style="bold cyan")
    table.add_column("Address")
    table.add_column("", style="green")
    for account in accounts:
        table.add_row(account.name, account.address, "validator" if account.index == 0 else "")
    return table


def mnemonics_table(accounts):
    table = Table(title="Mnemonics")
    table.add_column("#", style="bold cyan")
    table.add_column("Mnemonic", style="dim")
    for account in accounts:
        table.add_row(account.name, account.mnemonic)
    return table


class StageTimer:
    """Prints elapsed wall-clock time after each named stage.

        t = StageTimer(console)
        await ensure_genesis()
        t.mark("genesis")      # prints "  genesis  3.1s"
    """

    def __init__(self, console):
        self.console = console
        self._stage_start = time.monotonic()

    def mark(self, label):
        elapsed = time.monotonic() - self._stage_start
        self._stage_start = time.monotonic()
        self.console.notice(f"  {label}  {elapsed:.1f}s")
        return elapsed
