"""Allow ``python -m craftsync``."""

from .cli import run

run()
