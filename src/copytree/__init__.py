"""Select files in a workspace tree and export them as size-bounded text segments."""

__version__ = "0.1.0"
