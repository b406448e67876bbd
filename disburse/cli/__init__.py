"""Command-line entry point; the app lives in :mod:`disburse.cli.main`."""
