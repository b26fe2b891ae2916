"""Rich renderers for the CLI."""
