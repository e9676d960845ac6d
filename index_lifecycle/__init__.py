"""Index Lifecycle Engine.

Retention policy engine that decides when per-stream log indices roll over
and when rolled-over indices expire, with an Elasticsearch ILM backend.
"""

__version__ = "1.0.0"
__author__ = "Platform Team"
__email__ = "platform@example.com"
