"""
Chambers

Realtime voice companion bridge for the Chambers judicial wellness platform.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
