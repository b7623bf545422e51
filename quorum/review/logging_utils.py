"""Centralized logging utilities for quorum with package filtering."""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


class PackageFilter(logging.Filter):
    """Filter to only allow logs from specified packages."""

    def __init__(self, packages: List[str]) -> None:
        super().__init__()
        self.packages = packages

    def filter(self, record: logging.LogRecord) -> bool:
        return any(record.name.startswith(pkg) for pkg in self.packages)


class ReviewLogger:
    """Singleton logger configuration for the quorum package.

    Installs one stdout handler on the ``quorum`` logger that only passes
    quorum records, so reviewer subprocess libraries stay quiet.
    """

    _instance: Optional["ReviewLogger"] = None

    def __init__(self, verbose: bool = False, stream=None) -> None:
        self._verbose = verbose

        self.logger = logging.getLogger("quorum")
        self.logger.setLevel(logging.DEBUG if verbose else logging.INFO)
        self.logger.handlers.clear()

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        handler.addFilter(PackageFilter(["quorum"]))
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

        self.logger.addHandler(handler)
        self.logger.propagate = False

    @classmethod
    def get(cls, verbose: bool = False) -> "ReviewLogger":
        """Get or create the singleton ReviewLogger instance.

        Args:
            verbose: Whether to enable DEBUG level logging
        """
        if cls._instance is None or cls._instance._verbose != verbose:
            cls._instance = ReviewLogger(verbose)
        return cls._instance

    def verbose_logging_enabled(self) -> bool:
        return self._verbose


def setup_logging(verbose: bool = False) -> ReviewLogger:
    """Configure logging for the review CLI.

    Args:
        verbose: Enable debug level logging
    """
    logging.basicConfig(
        level=logging.WARNING, format=LOG_FORMAT, datefmt=DATE_FORMAT, stream=sys.stderr, force=True
    )
    return ReviewLogger.get(verbose)
