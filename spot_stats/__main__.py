"""
CLI shim enabling: python -m spot_stats --data /path/to/export

See spot_stats.cli for the full implementation.
"""

from .cli import _cli_main

if __name__ == "__main__":
    _cli_main()
