"""refshelf: a personal CSL-JSON reference manager."""

__version__ = "0.1.0"
