"""Bundled story documents."""
