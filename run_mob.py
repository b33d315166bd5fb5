#!/usr/bin/env python3
"""
SSH Mob: SSH Load Generator
============================
Thin entry-point. All logic lives in sshmob.runner.cli.

Usage:
    python3 run_mob.py --host 10.0.0.5                  # 1 connection, 60s
    python3 run_mob.py --host 10.0.0.5 --count 50       # 50 connections
    python3 run_mob.py --host 10.0.0.5 --tty --rate 30  # interactive shells
"""

from sshmob.runner.cli import main

if __name__ == "__main__":
    main()
