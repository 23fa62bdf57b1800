"""Download Yandex Disk photos one date group at a time."""

__version__ = "0.1.0"
