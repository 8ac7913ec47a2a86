"""zenodo-cli - Command-line client for the Zenodo REST API.

Search and inspect records, edit deposition metadata, and browse
communities and licenses on zenodo.org or the Zenodo sandbox.
"""

__version__ = "0.1.0"
__author__ = "zenodo-cli contributors"

from zenodo_cli.core.http_client import ZenodoClient
from zenodo_cli.integrations.zenodo_api import ZenodoAPI

__all__ = ["ZenodoClient", "ZenodoAPI", "__version__"]
