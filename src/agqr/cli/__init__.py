"""
CLI layer for agqr.

Commands only parse arguments, build objects from settings and render
output; scheduling and coordination live in their own packages.

Entry point::

    agqr --help
"""

from agqr.cli.app import app

__all__ = ["app"]
