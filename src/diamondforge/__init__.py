"""DiamondForge: diamond-shaped interactive story generation."""

__version__ = "0.1.0"
