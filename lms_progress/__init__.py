"""Course progress API: progress views and lesson completion over a headless CMS."""

__version__ = "0.1.0"
