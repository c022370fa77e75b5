"""
Code Intelligence Graph engine.

A tenant-scoped property graph over source-code symbols, with the
incremental machinery that keeps it and its derived artifacts current
as a repository moves from commit to commit.
"""

__version__ = "0.1.0"
