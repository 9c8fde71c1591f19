"""RoofGuard - request security layer for the roofing asset management API."""

__version__ = "1.0.0"
