"""Routers package."""

from . import (
    health,
    auth,
    generation,
    referrals,
    credits,
    files,
)
