"""
Convenience entry point for running slotbooker directly.

Usage: python -m slotbooker [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
