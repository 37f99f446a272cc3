"""Pure parsers for fnm and nvm command output."""

from nodeswitch.parsers import fnm, nvm
from nodeswitch.parsers.common import parse_current, parse_tool_version

__all__ = ["fnm", "nvm", "parse_current", "parse_tool_version"]
