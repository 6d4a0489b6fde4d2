"""Allow ``python -m macsigner``."""

from macsigner.cli import app

app(prog_name="macsigner")
