"""Configuration helpers for the LEAP bridge gateway."""

from .const import *  # noqa: F401, F403
