#!/usr/bin/env python3
"""
CLI entry point for linearvue.cli module.

This allows running: python -m linearvue.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
