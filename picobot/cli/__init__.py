"""CLI module for picobot."""
