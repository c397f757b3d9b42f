"""MinImage - concurrent image command chains."""

from minimage.core import __version__

__all__ = ["__version__"]
