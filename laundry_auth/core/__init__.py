"""Core configuration, storage client and exceptions."""
