"""Typer command groups registered on the launchpad root app."""
