#!/usr/bin/env python3
"""
Quiz Challenge - Main Entry Point

Usage:
    python main.py [--config PATH] [--check]

Installing the package also provides the ``quiz-challenge`` command.
"""
import sys

from quiz_challenge.app import main

if __name__ == "__main__":
    sys.exit(main())
