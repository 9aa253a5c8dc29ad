"""
vmagent CLI — manage build agent VM templates.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: vmagent.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="vmagent")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """vmagent — build agent templates for on-demand cloud VMs.

    Resolve, verify and provision agent templates.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups from modular files
# ---------------------------------------------------------------------------

from .template import register_template_commands
from .naming_cmd import register_naming_commands
from .queue import register_queue_commands

register_template_commands(main)
register_naming_commands(main)
register_queue_commands(main)
