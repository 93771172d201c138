"""End-to-end encrypted file transfer through a content-agnostic room relay."""

__version__ = "1.0.0"
