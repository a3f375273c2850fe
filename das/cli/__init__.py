from __future__ import annotations

"""
DAS • CLI

Command-line utilities, each importable as a module and runnable as a
script:

- sim_epoch.py : simulate one epoch end-to-end in memory and print the verdict
                 (`python -m das.cli.sim_epoch --size 9MiB --unit 3MiB`)
"""

from das.version import __version__

__all__ = ["__version__"]
