"""launchpad: run lifecycle commands across the repositories of a workspace."""

__version__ = "0.3.0"
