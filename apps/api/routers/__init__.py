"""Routers package."""

from . import (
    health,
    billing,
    images,
    cron,
    media,
)
