"""nodeswitch: manage Node.js versions through fnm or nvm."""

from nodeswitch.__version__ import __version__

__all__ = ["__version__"]
