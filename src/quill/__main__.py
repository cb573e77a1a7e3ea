"""Allow ``python -m quill``."""

from quill.cli.app import cli

cli()
