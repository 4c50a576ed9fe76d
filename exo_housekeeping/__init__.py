"""Exchange Online tenant-migration housekeeping tools."""

__version__ = "0.1.0"
