"""Permissions module — authorization resolver and per-user overrides."""
