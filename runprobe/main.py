#!/usr/bin/env python3
"""
Main entry point for the Typer-based runprobe CLI.

This delegates to the UI layer in runprobe.ui.cli to keep the
console script mapping stable.
"""

from runprobe.ui.cli import run as runprobe


if __name__ == "__main__":
    runprobe()
