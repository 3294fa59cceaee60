"""Main CLI application."""

import typer

from cadence.cli.commands import config, schedule, serve, tick

app = typer.Typer(
    name="cadence",
    help="Cadence - recurring content deliveries",
    no_args_is_help=True,
)

serve.register(app)
tick.register(app)
schedule.register(app)
config.register(app)
