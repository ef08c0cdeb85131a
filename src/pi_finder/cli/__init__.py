"""Command-line entry points for pi_finder."""
