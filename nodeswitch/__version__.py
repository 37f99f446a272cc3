"""Version information for nodeswitch"""

__version__ = "0.1.0"
