"""guardstate command line interface."""
