"""graphfill - graph-context retrieval and fill-in-the-middle completion."""

__version__ = "0.1.0"
