"""fibengine - exclusive-session Fibonacci computation service"""

from fibengine.version import __version__

__all__ = ["__version__"]
