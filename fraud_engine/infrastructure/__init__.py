"""Ambient infrastructure: configuration, database sessions, logging, retries."""
