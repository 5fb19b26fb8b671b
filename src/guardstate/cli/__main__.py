"""Allow ``python -m guardstate.cli``."""

from guardstate.cli.main import cli

if __name__ == "__main__":
    cli()
