"""Routers package."""

from . import (
    health,
    auth,
    users,
    bonos,
    interventions,
    punctual,
    uploads,
)
