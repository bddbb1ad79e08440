"""algorun - install, update and supervise an Algorand node.

Key modules:
- core: Release resolution, download, installation, config patching,
  process control and sync monitoring
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "algorun contributors"

__all__ = [
    "__version__",
    "__author__",
]
