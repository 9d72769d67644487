"""HTTP order placement surface."""

from perpsim.api.app import create_app

__all__ = ["create_app"]
