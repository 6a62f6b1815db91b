"""Datasette plugin exposing the treasury-agent suggestion queue over HTTP."""

from datasette_treasury_queue.plugin import register_routes, skip_csrf

__all__ = [
    "register_routes",
    "skip_csrf",
]
