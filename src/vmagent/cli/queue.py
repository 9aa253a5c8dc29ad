"""Re-verification queue commands: show, run."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import VMAGENT_HOME, console, load_runtime, state_label


def register_queue_commands(main: click.Group) -> None:
    """Register the queue command group."""

    @main.group()
    def queue():
        """Re-verification queue — failed templates waiting to be re-checked."""

    @queue.command("show")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    def queue_show(home: str):
        """List templates queued for re-verification."""
        runtime = load_runtime(home)
        pending = runtime.gate.queue.pending()
        if not pending:
            console.print("\n[dim]Re-verification queue is empty.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Template", style="cyan")
        table.add_column("State")
        table.add_column("Details", style="dim")
        for name in pending:
            status = runtime.gate.status(name)
            tpl = runtime.context.get_template(name)
            disabled = bool(tpl and tpl.template_disabled)
            first_line = status.status_details.splitlines()[0] if status.status_details else ""
            table.add_row(name, state_label(status.state, disabled), first_line)

        console.print(f"\n[bold]{len(pending)}[/] queued:\n")
        console.print(table)
        console.print()

    @queue.command("run")
    @click.option("--home", default=VMAGENT_HOME, type=click.Path(), help="vmagent home directory.")
    def queue_run(home: str):
        """Run one re-verification pass over the queue.

        Examples:

            vmagent queue run
        """
        runtime = load_runtime(home)
        results = runtime.verification_task().run_once()
        if not results:
            console.print("[dim]Nothing to re-verify.[/]")
            return

        for name, errors in results.items():
            runtime.persist_status(name)
            if errors:
                console.print(f"[bold red]FAILED[/] [cyan]{name}[/] ({len(errors)} problem(s))")
            else:
                console.print(f"[bold green]VERIFIED[/] [cyan]{name}[/]")

    main.add_command(queue)
