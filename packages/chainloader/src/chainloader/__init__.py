"""Fetch a GitHub archive and run an entrypoint from it."""
