"""
Entry point for running dnspulse_exporter as a module.

Usage: python -m dnspulse_exporter [OPTIONS] COMMAND [ARGS]...
"""

from .cli import main

if __name__ == "__main__":
    main()
