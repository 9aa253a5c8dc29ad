"""Template commands: list, show, import, verify, provision, delete."""

from __future__ import annotations

import json
from pathlib import Path

import click
import yaml
from pydantic import ValidationError
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..naming import StorageNamingError
from ..provisioning import ProvisioningError, TemplateNotVerifiedError
from ..templates.migrations import rehydrate
from ..templates.schema import resolve_template_properties
from ._common import VMAGENT_HOME, console, load_runtime, state_label


def register_template_commands(main: click.Group) -> None:
    """Register the template command group."""

    @main.group()
    def template():
        """Agent templates — how each class of build agent is provisioned."""

    @template.command("list")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def template_list(home: str, json_out: bool):
        """List stored templates and their verification state.

        Examples:

            vmagent template list

            vmagent template list --json-out
        """
        runtime = load_runtime(home)
        templates = runtime.context.templates

        if json_out:
            rows = [
                {
                    "template_name": t.template_name,
                    "image": t.image_top_level_type,
                    "storage_account_name": t.storage_account_name,
                    "state": runtime.gate.state(t.template_name).value,
                    "disabled": t.template_disabled,
                }
                for t in templates
            ]
            click.echo(json.dumps(rows, indent=2))
            return

        if not templates:
            console.print("\n[dim]No templates found.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Name", style="cyan")
        table.add_column("Image")
        table.add_column("Storage account")
        table.add_column("Labels", style="dim")
        table.add_column("State")

        for t in templates:
            table.add_row(
                t.template_name,
                t.image_top_level_type,
                f"{t.storage_account_name} ({t.storage_account_name_reference_type})",
                " ".join(sorted(t.label_set)),
                state_label(runtime.gate.state(t.template_name), t.template_disabled),
            )

        console.print(f"\n[bold]{len(templates)}[/] template(s):\n")
        console.print(table)
        console.print()

    @template.command("show")
    @click.argument("name")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    def template_show(name: str, home: str):
        """Show the resolved properties and status of a template."""
        runtime = load_runtime(home)
        tpl = runtime.context.get_template(name)
        if tpl is None:
            console.print(f"[red]Template not found: {name}[/]")
            raise SystemExit(1)

        props = resolve_template_properties(tpl, runtime.context.resource_group_name)
        status = runtime.gate.status(name)
        lines = [
            f"{key}: {value}"
            for key, value in props.model_dump(mode="json", exclude={"init_script"}).items()
        ]
        lines.append(f"state: {state_label(status.state, tpl.template_disabled)}")
        if status.status_details:
            lines.append(f"[red]{status.status_details}[/]")
        console.print(Panel("\n".join(lines), title=name, border_style="cyan"))

    @template.command("import")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    def template_import(path: str, home: str):
        """Import a template from a YAML form or a legacy record.

        The template is resolved, bound to the configured cloud and saved.
        Any previous verification result is discarded.

        Examples:

            vmagent template import ubuntu-builder.yaml
        """
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            console.print("[red]Expected a YAML mapping of template fields.[/]")
            raise SystemExit(1)

        runtime = load_runtime(home)
        try:
            tpl, _ = rehydrate(raw)
        except ValidationError as exc:
            console.print(f"[red]Invalid template record:[/] {escape(str(exc))}")
            raise SystemExit(1)
        try:
            bound = runtime.register(tpl)
        except (StorageNamingError, ValueError) as exc:
            console.print(f"[red]{escape(str(exc))}[/]")
            raise SystemExit(1)

        console.print(
            f"[green]Imported[/] [cyan]{bound.template_name}[/] "
            f"(storage account: {bound.storage_account_name})"
        )

    @template.command("verify")
    @click.argument("name", required=False)
    @click.option("--all", "verify_all", is_flag=True, help="Verify every template.")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    def template_verify(name: str, verify_all: bool, home: str):
        """Verify templates against the provisioning service.

        Examples:

            vmagent template verify ubuntu-builder

            vmagent template verify --all
        """
        runtime = load_runtime(home)
        if verify_all:
            targets = runtime.context.templates
        elif name:
            tpl = runtime.context.get_template(name)
            if tpl is None:
                console.print(f"[red]Template not found: {name}[/]")
                raise SystemExit(1)
            targets = [tpl]
        else:
            console.print("[red]Give a template name or --all.[/]")
            raise SystemExit(1)

        failed = 0
        for tpl in targets:
            errors = runtime.gate.verify(tpl, runtime.context)
            runtime.persist_status(tpl.template_name)
            if errors:
                failed += 1
                console.print(f"[bold red]FAILED[/] [cyan]{tpl.template_name}[/]")
                console.print(runtime.gate.status(tpl.template_name).status_details)
            else:
                console.print(f"[bold green]VERIFIED[/] [cyan]{tpl.template_name}[/]")

        if failed:
            raise SystemExit(1)

    @template.command("provision")
    @click.argument("name")
    @click.option("--count", "-n", default=1, type=int, help="Number of agents.")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    def template_provision(name: str, count: int, home: str):
        """Provision agents from a verified template.

        Examples:

            vmagent template provision ubuntu-builder --count 3
        """
        runtime = load_runtime(home)
        tpl = runtime.context.get_template(name)
        if tpl is None:
            console.print(f"[red]Template not found: {name}[/]")
            raise SystemExit(1)
        if tpl.template_disabled:
            console.print(f"[yellow]Template {name} is disabled.[/]")
            raise SystemExit(1)
        if count > runtime.config.max_agents_per_request:
            console.print(
                f"[red]At most {runtime.config.max_agents_per_request} agents per request.[/]"
            )
            raise SystemExit(1)

        try:
            deployment = runtime.orchestrator.provision(tpl, runtime.context, count)
        except (TemplateNotVerifiedError, ValueError) as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)
        except ProvisioningError as exc:
            runtime.persist_status(name)
            console.print(f"[red]{exc}[/]")
            console.print("[yellow]Template queued for re-verification.[/]")
            raise SystemExit(1)

        console.print(Panel(
            f"[bold green]Deployment accepted[/]\n"
            f"Deployment: {deployment.deployment_name}\n"
            f"VM base name: {deployment.vm_base_name}\n"
            f"Agents: {deployment.vm_count}",
            title=name,
            border_style="green",
        ))

    @template.command("delete")
    @click.argument("name")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
    def template_delete(name: str, home: str, yes: bool):
        """Delete a template. This is the only way a template is removed."""
        runtime = load_runtime(home)
        if name not in runtime.context:
            console.print(f"[red]Template not found: {name}[/]")
            raise SystemExit(1)
        if not yes:
            click.confirm(f"Delete template {name}?", abort=True)
        runtime.context.remove_template(name)
        runtime.gate.queue.remove(name)
        runtime.store.delete(name)
        console.print(f"[green]Deleted[/] [cyan]{name}[/]")

    main.add_command(template)
