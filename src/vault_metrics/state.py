"""Application state container."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .settings import MetricsSettings


@dataclass
class AppState:
    """Container for application-wide state and dependencies.

    Passed through the service layer to avoid global state and enable testing.
    """

    settings: MetricsSettings
    logger: logging.Logger
