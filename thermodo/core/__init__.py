"""Shared constants, data model, configuration and event log."""
