"""meteora-lp-reader support package: config, upstream clients, HTTP server."""

from lp_reader.central_config import PROJECT_NAME, PROJECT_VERSION

__version__ = PROJECT_VERSION

__all__ = ["PROJECT_NAME", "PROJECT_VERSION", "__version__"]
