"""Control channel between a front end and the orchestrator.

Front ends (the interactive terminal, tests, a future socket daemon) turn
operator input into ControlEvents; the orchestrator only consumes events().
"""

import asyncio
import signal
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ControlKind(Enum):
    START = "start"
    STOP = "stop"
    SNAPSHOT = "snapshot"
    RESTORE = "restore"
    LIST = "list"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class ControlEvent:
    kind: ControlKind
    argument: str = None


_COMMANDS = {
    "start": ControlKind.START,
    "stop": ControlKind.STOP,
    "snapshot": ControlKind.SNAPSHOT,
    "s": ControlKind.SNAPSHOT,
    "list": ControlKind.LIST,
    "ls": ControlKind.LIST,
    "quit": ControlKind.TERMINATE,
    "exit": ControlKind.TERMINATE,
}

HELP = "Commands: snapshot, list, restore <name>, stop, start, quit"


def parse_command(line):
    """Map one line of operator input to a ControlEvent, or None if unknown."""
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return None
    word = parts[0].lower()
    if word == "restore":
        if len(parts) < 2:
            return None
        return ControlEvent(ControlKind.RESTORE, parts[1].strip())
    kind = _COMMANDS.get(word)
    return ControlEvent(kind) if kind else None


class EventSource(ABC):

    @abstractmethod
    def events(self):
        """Async iterator of ControlEvents. Ends after TERMINATE."""
        pass


class QueueEventSource(EventSource):
    """Events pushed programmatically, e.g. from signal handlers or tests."""

    def __init__(self):
        self._queue = asyncio.Queue()

    def put(self, event):
        self._queue.put_nowait(event)

    def close(self):
        self.put(ControlEvent(ControlKind.TERMINATE))

    async def events(self):
        while True:
            event = await self._queue.get()
            yield event
            if event.kind is ControlKind.TERMINATE:
                return


class TerminalEventSource(QueueEventSource):
    """Reads commands from stdin; SIGINT/SIGTERM and EOF request termination.

    Requires a Unix event loop (add_reader / add_signal_handler).
    """

    def __init__(self, console, stream=None):
        super().__init__()
        self.console = console
        self.stream = stream or sys.stdin
        self._loop = None

    def _on_line(self):
        line = self.stream.readline()
        if not line:
            self._detach()
            self.close()
            return
        if not line.strip():
            return
        event = parse_command(line)
        if event is None:
            self.console.notice(HELP)
            return
        self.put(event)

    def _attach(self):
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self.stream.fileno(), self._on_line)
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._loop.add_signal_handler(sig, self.close)

    def _detach(self):
        if self._loop is None:
            return
        self._loop.remove_reader(self.stream.fileno())
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._loop.remove_signal_handler(sig)
        self._loop = None

    async def events(self):
        self._attach()
        self.console.notice(HELP)
        try:
            async for event in super().events():
                yield event
        finally:
            self._detach()
