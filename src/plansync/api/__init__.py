"""HTTP surface for plan generation and calendar connections."""

from plansync.api.app import create_app

__all__ = ["create_app"]
