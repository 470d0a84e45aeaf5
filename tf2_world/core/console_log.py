"""
Console log plumbing: tailing TF2's console.log and dispatching its lines.

LogFollower knows about files; ConsoleLineDispatcher knows about lines. The
follower only ever hands complete, newline-terminated text to the dispatcher.
"""
import logging
import os
import time
from typing import Callable, Optional

from .console_lines import parse_console_line, split_timestamp

logger = logging.getLogger(__name__)


class ConsoleLineDispatcher:
    """
    Splits raw console output into lines and routes each one.

    A parsed line is first applied to the world state and then broadcast to
    every console-line listener; an unparsed line is only broadcast.

    Args:
        world: The WorldState that owns the listener bus
        parser: Callable (line, timestamp) -> typed line or None
    """

    def __init__(self, world, parser: Callable = parse_console_line):
        self._world = world
        self._parser = parser

    def add_console_output_chunk(self, chunk: str):
        """
        Process every newline-terminated line in `chunk`.

        Text after the last newline is not a complete line and is discarded;
        callers that read partial lines must keep that remainder themselves.
        """
        lines = chunk.split("\n")
        for line in lines[:-1]:
            self.add_console_output_line(line)

    def add_console_output_line(self, line: str):
        timestamp, text = split_timestamp(line)
        if timestamp is not None:
            self._world.update_timestamp(timestamp)

        parsed = self._parser(text, self._world.get_current_time())
        bus = self._world.listeners
        if parsed is not None:
            self._world.on_console_line_parsed(parsed)
            bus.invoke_console_line("on_console_line_parsed", self._world, parsed)
        else:
            bus.invoke_console_line("on_console_line_unparsed", self._world, line)


class LogFollower:
    """
    Follows TF2's console.log and returns complete lines as they're added.

    Handles the file not existing yet, being truncated (TF2 rewrites it on
    launch with -condebug) and being replaced.
    """

    def __init__(self, log_path: str, start_at_end: bool = True):
        self.log_path = log_path
        self.file = None
        self.inode = None
        self.offset = 0
        self.first_open = True
        self.start_at_end = start_at_end
        self._partial = ""

    def _reopen_if_needed(self) -> bool:
        try:
            stat = os.stat(self.log_path)
        except FileNotFoundError:
            return False

        if self.inode is None or self.inode != stat.st_ino:
            if self.file:
                self.file.close()
            self.file = open(self.log_path, 'r', encoding='utf-8', errors='replace')
            self.inode = stat.st_ino
            self._partial = ""

            if self.first_open and self.start_at_end:
                # First open: skip what previous sessions wrote
                self.file.seek(0, 2)
                self.offset = self.file.tell()
                logger.info(f"Console log opened at end: {self.log_path}")
            else:
                self.offset = 0
                logger.info(f"Console log (re)opened from start: {self.log_path}")
            self.first_open = False
        elif stat.st_size < self.offset:
            logger.info("Console log truncated - starting from beginning.")
            self.offset = 0
            self._partial = ""

        return True

    def poll(self) -> str:
        """
        Read whatever complete lines have been appended since the last call.

        Returns:
            Newline-terminated text (possibly empty). Never blocks.
        """
        if not self._reopen_if_needed():
            return ""

        self.file.seek(self.offset)
        data = self.file.read()
        self.offset = self.file.tell()
        if not data:
            return ""

        data = self._partial + data
        cut = data.rfind("\n") + 1
        self._partial = data[cut:]
        return data[:cut]

    def follow(self, callback: Callable[[str], None], interval: float = 0.05,
               should_stop: Optional[Callable[[], bool]] = None):
        """Follow the log until `should_stop()` is true, calling `callback` with each new chunk."""
        logger.info(f"LogFollower.follow() started! Watching: {self.log_path}")
        while not (should_stop and should_stop()):
            try:
                chunk = self.poll()
                if chunk:
                    callback(chunk)
                else:
                    time.sleep(interval)
            except OSError as e:
                logger.error(f"Error following console log: {e}")
                time.sleep(1)

    def close(self):
        if self.file:
            self.file.close()
            self.file = None
