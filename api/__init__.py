"""HTTP API for keyword research."""
