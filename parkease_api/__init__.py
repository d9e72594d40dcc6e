"""ParkEase parking-slot reservation API."""

__version__ = '1.0.0'
