"""treeissues CLI commands for issue tracking."""

from __future__ import annotations

import typer

from ._helpers import SortedGroup

app = typer.Typer(
    help="tis - track issues attached to the nodes of a tree",
    no_args_is_help=True,
    cls=SortedGroup,
)


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON for all commands",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output to stderr",
    ),
) -> None:
    from treeissues.config import get_log_level
    from treeissues.log import setup_logging

    from ._json_state import set_json_flag

    set_json_flag(json_output)
    setup_logging("DEBUG" if verbose else get_log_level())
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


from . import (  # noqa: E402
    _cmd_assign,
    _cmd_comment,
    _cmd_create,
    _cmd_delete,
    _cmd_init,
    _cmd_read,
    _cmd_update,
    _cmd_web,
)

for _mod in (
    _cmd_assign,
    _cmd_comment,
    _cmd_create,
    _cmd_delete,
    _cmd_init,
    _cmd_read,
    _cmd_update,
    _cmd_web,
):
    _mod.register(app)


def main() -> None:
    """Run the treeissues CLI application."""
    app()
