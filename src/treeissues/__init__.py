"""Issue tracking for nodes of an external tree."""

from treeissues._version import version as __version__

__all__ = ["__version__"]
