"""
BaseScript — abstract base class for crmsheets command-line scripts.

Provides:
  - Rotating file logger + stdout handler, scoped to <log dir>/<script>.log
  - Abstract async run() method that must return a JSON-serialisable dict
  - main() classmethod: parses --debug plus script arguments, runs the script,
    prints JSON to stdout
  - Automatic elapsed-time logging

The log directory is CRMSHEETS_LOG_DIR, default ~/crmsheets/logs.

Subclass usage:
    class MyScript(BaseScript):
        async def run(self) -> dict:
            self.logger.info("doing work...")
            return {"result": "done"}

    if __name__ == "__main__":
        MyScript.main()
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional


def logs_dir() -> Path:
    return Path(os.environ.get("CRMSHEETS_LOG_DIR", "~/crmsheets/logs")).expanduser()


class BaseScript(ABC):
    """Abstract base for crmsheets scripts."""

    def __init__(
        self,
        log_level: int = logging.INFO,
        args: Optional[argparse.Namespace] = None,
    ) -> None:
        # Derive script name from the concrete class name (lowercased)
        self.script_name: str = type(self).__name__.lower()
        self.args = args or argparse.Namespace()
        self.logger: logging.Logger = self._setup_logger(log_level)

    # ── Logging ───────────────────────────────────────────────────────────────

    def _setup_logger(self, log_level: int) -> logging.Logger:
        """
        Configure the "crmsheets" logger tree to write to both:
          - <log dir>/<script_name>.log  (rotating, max 2 MB × 5 backups)
          - stdout
        and return the script's own child logger.
        """
        directory = logs_dir()
        directory.mkdir(parents=True, exist_ok=True)

        root = logging.getLogger("crmsheets")
        root.setLevel(log_level)
        logger = root.getChild(self.script_name)

        # Avoid adding duplicate handlers if the script is instantiated twice
        if root.handlers:
            return logger

        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s — %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        file_handler = RotatingFileHandler(
            directory / f"{self.script_name}.log",
            maxBytes=2_000_000,   # 2 MB per file
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)

        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(fmt)

        root.addHandler(file_handler)
        root.addHandler(stream_handler)
        return logger

    # ── Abstract interface ────────────────────────────────────────────────────

    @abstractmethod
    async def run(self) -> dict[str, Any]:
        """
        Execute the script.

        Must return a dict that is JSON-serialisable (str keys, JSON-safe values).
        datetime objects are serialised via default=str.
        """

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        """Hook for subclasses to register their own CLI arguments."""

    # ── CLI entrypoint ────────────────────────────────────────────────────────

    @classmethod
    def main(cls, argv: Optional[list[str]] = None) -> dict[str, Any]:
        """
        Standard CLI entrypoint. Wire up as:
            if __name__ == "__main__":
                MyScript.main()
        """
        doc = (cls.__doc__ or cls.__name__).strip().splitlines()[0]
        parser = argparse.ArgumentParser(description=doc)
        parser.add_argument(
            "--debug", action="store_true", help="Enable DEBUG-level logging"
        )
        cls.add_arguments(parser)
        args = parser.parse_args(argv)

        log_level = logging.DEBUG if args.debug else logging.INFO
        script = cls(log_level=log_level, args=args)

        t0 = time.monotonic()
        try:
            result = asyncio.run(script.run())
            elapsed = time.monotonic() - t0
            script.logger.info("Completed in %.2fs", elapsed)
            print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
            return result
        except Exception:
            elapsed = time.monotonic() - t0
            script.logger.exception("Script failed after %.2fs", elapsed)
            raise
