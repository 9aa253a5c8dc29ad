"""Naming commands: storage-name, generate."""

from __future__ import annotations

import click

from ..naming import (
    generate_unique_storage_account_name,
    resolve_storage_account_name,
    resolve_storage_reference_type,
)
from ._common import console


def register_naming_commands(main: click.Group) -> None:
    """Register the naming command group."""

    @main.group()
    def naming():
        """Storage account naming — see what a template form resolves to."""

    @naming.command("storage-name")
    @click.option("--type", "reference_type", default=None, help="Reference type tag (new/existing).")
    @click.option("--new", "new_name", default=None, help="New storage account name field.")
    @click.option("--existing", "existing_name", default=None, help="Existing storage account name field.")
    def naming_storage_name(reference_type: str, new_name: str, existing_name: str):
        """Resolve the effective storage account name of a form.

        Examples:

            vmagent naming storage-name --type existing --existing acct2

            vmagent naming storage-name --new acct1
        """
        effective_type = resolve_storage_reference_type(reference_type, new_name)
        name = resolve_storage_account_name(reference_type, new_name, existing_name)
        console.print(f"Reference type: [cyan]{effective_type}[/]")
        if name:
            console.print(f"Storage account: [bold]{name}[/]")
        else:
            console.print("Storage account: [dim](none, will be generated)[/]")

    @naming.command("generate")
    @click.argument("resource_group")
    @click.option("--subscription", default=None, help="Subscription id of the cloud credentials.")
    def naming_generate(resource_group: str, subscription: str):
        """Generate the deterministic storage account name for a resource group.

        Examples:

            vmagent naming generate build-agents --subscription 0000-1111
        """
        name = generate_unique_storage_account_name(resource_group, subscription)
        if not name:
            console.print("[red]Could not generate a storage account name.[/]")
            raise SystemExit(1)
        click.echo(name)

    main.add_command(naming)
