"""Shared fixtures for the laundry-auth test suite."""

pytest_plugins = ["laundry_auth.testing.fixtures"]
