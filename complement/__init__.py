"""Blueprints, configuration and anonymised account snapshots for testing Matrix homeservers."""

__version__ = "0.1.0"