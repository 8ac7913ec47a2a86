"""Integration modules for zenodo-cli.

Endpoint wrappers for the Zenodo REST API: records, depositions,
communities, licenses and access links.
"""

from zenodo_cli.integrations.zenodo_api import CITATION_FORMATS, ZenodoAPI

__all__ = ["CITATION_FORMATS", "ZenodoAPI"]
