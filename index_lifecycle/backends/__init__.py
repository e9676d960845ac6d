"""Index backends applying lifecycle actions."""

from index_lifecycle.backends.dry_run import DryRunBackend
from index_lifecycle.backends.elasticsearch import ElasticsearchBackend

__all__ = ["DryRunBackend", "ElasticsearchBackend"]
