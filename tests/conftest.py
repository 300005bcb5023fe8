"""Shared pytest configuration."""

pytest_plugins = ["fixtures.signal_contexts"]
