"""Elasticsearch index backend.

Applies lifecycle actions through the Elasticsearch REST API: ILM policies
are installed with ``PUT _ilm/policy``, active indices are rolled over
through the stream's write alias, and expired indices are deleted by name.
"""

import re
from datetime import datetime, timezone
from typing import Any

import httpx

from index_lifecycle.observability.logging import get_logger
from index_lifecycle.retention.ilm import build_policy_document, policy_name
from index_lifecycle.retention.models import ObservedIndex, RetentionPolicy

logger = get_logger(__name__)


class ElasticsearchBackend:
    """Index backend talking to an Elasticsearch cluster over HTTP.

    Index generation ``n`` of stream ``api`` with prefix ``logs-`` lives in
    index ``logs-api-{n + 1:06d}``; the write alias is ``logs-api``.

    The engine owns rollover and deletion. Installed ILM policies carry no
    actions unless ``ilm_actions`` is set, in which case the worker must not
    run against the same indices.

    Example:
        >>> backend = ElasticsearchBackend("http://localhost:9200")
        >>> await backend.put_policy(policy)
        >>> await backend.rollover("api", 0)
        >>> await backend.close()
    """

    def __init__(
        self,
        url: str,
        username: str | None = None,
        password: str | None = None,
        verify_certs: bool = True,
        timeout: float = 30.0,
        index_prefix: str = "logs-",
        ilm_actions: bool = False,
    ) -> None:
        """Initialize the Elasticsearch backend.

        Args:
            url: Cluster base URL
            username: Basic auth username
            password: Basic auth password
            verify_certs: Whether to verify TLS certificates
            timeout: HTTP request timeout in seconds
            index_prefix: Prefix for index, alias and policy names
            ilm_actions: Let installed ILM policies roll over and delete indices
        """
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.verify_certs = verify_certs
        self.timeout = timeout
        self.index_prefix = index_prefix
        self.ilm_actions = ilm_actions
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            auth = (self.username, self.password or "") if self.username else None
            self._client = httpx.AsyncClient(
                base_url=self.url,
                auth=auth,
                verify=self.verify_certs,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    def alias(self, stream_name: str) -> str:
        """Write alias of a stream."""
        return f"{self.index_prefix}{stream_name}"

    def index_name(self, stream_name: str, generation: int) -> str:
        """Physical index name of a stream generation."""
        return f"{self.index_prefix}{stream_name}-{generation + 1:06d}"

    def parse_generation(self, stream_name: str, index: str) -> int | None:
        """Generation of a physical index name, or None if it is not one of the stream's."""
        match = re.fullmatch(rf"{re.escape(self.alias(stream_name))}-(\d{{6,}})", index)
        if match is None or int(match.group(1)) == 0:
            return None
        return int(match.group(1)) - 1

    async def put_policy(self, policy: RetentionPolicy) -> bool:
        """Install or update the ILM policy for a stream.

        Args:
            policy: Retention policy to install

        Returns:
            True if the cluster acknowledged the policy
        """
        client = await self._get_client()
        name = policy_name(policy, self.index_prefix)
        response = await client.put(
            f"/_ilm/policy/{name}",
            json=build_policy_document(policy, include_actions=self.ilm_actions),
        )
        response.raise_for_status()
        acknowledged = bool(response.json().get("acknowledged", False))
        logger.info("ilm_policy_installed", stream=policy.stream_name, policy=name, acknowledged=acknowledged)
        return acknowledged

    async def rollover(self, stream_name: str, generation: int) -> bool:
        """Roll the stream's write alias over to the next generation.

        Args:
            stream_name: Stream name
            generation: Generation being rolled over

        Returns:
            True if the cluster rolled the alias over from the expected index
        """
        client = await self._get_client()
        alias = self.alias(stream_name)
        new_index = self.index_name(stream_name, generation + 1)
        response = await client.post(f"/{alias}/_rollover/{new_index}")
        response.raise_for_status()
        body: dict[str, Any] = response.json()

        expected = self.index_name(stream_name, generation)
        if body.get("old_index") and body["old_index"] != expected:
            # The alias pointed at another generation; the store must not advance
            logger.warning(
                "rollover_index_mismatch",
                stream=stream_name,
                expected=expected,
                old_index=body["old_index"],
                new_index=body.get("new_index"),
                rolled_over=body.get("rolled_over"),
            )
            return False

        rolled = bool(body.get("rolled_over", False))
        logger.info("index_rolled_over", stream=stream_name, old_index=expected, new_index=new_index, rolled_over=rolled)
        return rolled

    async def delete(self, stream_name: str, generation: int) -> bool:
        """Delete one index generation.

        An index that no longer exists counts as deleted.

        Args:
            stream_name: Stream name
            generation: Generation to delete

        Returns:
            True if the index is gone
        """
        client = await self._get_client()
        index = self.index_name(stream_name, generation)
        response = await client.delete(f"/{index}")
        if response.status_code == 404:
            logger.info("index_already_absent", stream=stream_name, index=index)
            return True
        response.raise_for_status()
        logger.info("index_deleted", stream=stream_name, index=index)
        return bool(response.json().get("acknowledged", False))

    async def list_generations(self, stream_name: str) -> list[ObservedIndex]:
        """List the stream's index generations present on the cluster.

        Args:
            stream_name: Stream name

        Returns:
            Observed generations in generation order
        """
        client = await self._get_client()
        response = await client.get(
            f"/_cat/indices/{self.alias(stream_name)}-*",
            params={"format": "json", "h": "index,creation.date,store.size", "bytes": "b"},
        )
        if response.status_code == 404:
            return []
        response.raise_for_status()

        generations = []
        for row in response.json():
            generation = self.parse_generation(stream_name, row.get("index", ""))
            if generation is None:
                continue
            generations.append(
                ObservedIndex(
                    generation=generation,
                    created_at=datetime.fromtimestamp(int(row["creation.date"]) / 1000, tz=timezone.utc),
                    size_bytes=int(row.get("store.size") or 0),
                )
            )
        generations.sort(key=lambda g: g.generation)
        logger.debug("index_generations_listed", stream=stream_name, count=len(generations))
        return generations

    async def health_check(self) -> dict[str, Any]:
        """Fetch cluster health.

        Returns:
            Health summary with ``healthy`` and ``status`` keys
        """
        try:
            client = await self._get_client()
            response = await client.get("/_cluster/health", timeout=10.0)
            response.raise_for_status()
            status = response.json().get("status", "unknown")
            return {"healthy": status in ("green", "yellow"), "status": status}
        except httpx.HTTPError as e:
            logger.warning("elasticsearch_health_check_failed", error=str(e))
            return {"healthy": False, "status": "unreachable", "error": str(e)}

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
