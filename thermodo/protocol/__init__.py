"""Presence detection and measurement sessions."""
