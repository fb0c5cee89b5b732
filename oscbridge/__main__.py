#!/usr/bin/env python3
"""
Entry point for running the bridge as a module.

Usage:
    python -m oscbridge [--config config.yaml] [--port 3001] [--osc-port 9005]
"""

from oscbridge.server import main

main()
