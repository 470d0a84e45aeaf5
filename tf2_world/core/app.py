"""
Headless tracker application.

Tails TF2's console.log, feeds it to a WorldState and ticks the Steam API
enrichment, reporting world events to the log.
"""
import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional

from ..config.settings import Settings
from .console_log import LogFollower
from .events import WorldEventListener
from .. import __version__
from .world_state import WorldState

logger = logging.getLogger(__name__)

DEFAULT_CONSOLE_LOG_PATHS = [
    Path("C:/Program Files (x86)/Steam/steamapps/common/Team Fortress 2/tf/console.log"),
    Path.home() / ".steam/steam/steamapps/common/Team Fortress 2/tf/console.log",
    Path.home() / ".local/share/Steam/steamapps/common/Team Fortress 2/tf/console.log",
]


def setup_logging(debug: bool = False, log_dir: Path = Path("logs")):
    log_dir.mkdir(exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / "tracker.log", encoding='utf-8'),
            logging.StreamHandler()
        ]
    )
    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def find_console_log(settings: Settings) -> Optional[str]:
    if settings.console_log_path:
        return settings.console_log_path

    for candidate in DEFAULT_CONSOLE_LOG_PATHS:
        if candidate.exists():
            return str(candidate)
    return None


class WorldEventReporter(WorldEventListener):
    """Logs world events as they happen."""

    def on_chat_msg(self, world, player, message):
        logger.info(f"[chat] {player}: {message}")

    def on_player_dropped_from_server(self, world, player, reason):
        logger.info(f"[drop] {player} left: {reason}")

    def on_local_player_spawned(self, world, player_class):
        logger.info(f"Local player spawned as {player_class.name.lower()}")

    def on_local_player_initialized(self, world, initialized):
        logger.info("Local player initialized" if initialized else "Local player left the server")


class TrackerApp:
    """Owns the follower and the world state and runs the tick loop."""

    def __init__(self, settings: Settings, console_log_path: str, tick_interval: float = 0.1):
        self.settings = settings
        self.world = WorldState(settings)
        self.follower = LogFollower(console_log_path)
        self.tick_interval = tick_interval
        self.world.add_world_event_listener(WorldEventReporter())

    def tick(self):
        chunk = self.follower.poll()
        if chunk:
            self.world.add_console_output_chunk(chunk)
        self.world.update()

    def run(self, should_stop: Optional[Callable[[], bool]] = None):
        logger.info(f"TF2 world tracker {__version__} listening to {self.follower.log_path}")
        try:
            while not (should_stop and should_stop()):
                self.tick()
                time.sleep(self.tick_interval)
        finally:
            self.follower.close()
            self.settings.close()


def main():
    import argparse
    parser = argparse.ArgumentParser(description="TF2 world tracker")
    parser.add_argument("--console-log", help="Path to tf/console.log (default: auto-detect)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(args.debug)
    settings = Settings.load()
    if args.console_log:
        settings.console_log_path = args.console_log

    log_path = find_console_log(settings)
    if not log_path:
        logger.error("Could not find TF2's console.log. Pass --console-log or set TF2_CONSOLE_LOG.")
        raise SystemExit(1)

    if not settings.get_steam_api_key():
        logger.warning("No Steam API key configured; player summaries, bans and playtime are disabled.")

    app = TrackerApp(settings, os.fspath(log_path))
    try:
        app.run()
    except KeyboardInterrupt:
        logger.info("Exiting...")


if __name__ == "__main__":
    main()
