"""sheetsync: keep character-sheet controls and a remote document in sync."""

__version__ = "0.3.0"
