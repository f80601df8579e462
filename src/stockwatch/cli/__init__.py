"""stockwatch command-line interface."""
