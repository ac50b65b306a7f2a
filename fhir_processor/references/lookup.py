"""External reference lookup collaborators.

Only used under the RequireResolution policy. The resolver bounds every
call with its own deadline, so implementations may block.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from .. import config
from ..exceptions import ReferenceLookupError

logger = logging.getLogger(__name__)


@runtime_checkable
class ReferenceLookup(Protocol):
    def exists(self, reference: str) -> bool:
        """Return True when the referenced resource can be retrieved."""
        ...


class HttpReferenceLookup:
    """Checks external references with ``GET`` requests against a FHIR server.

    Absolute references are fetched as-is; relative ``Type/id`` references
    are resolved against ``base_url``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = config.LOOKUP_TIMEOUT,
        headers: dict[str, str] | None = None,
        verify_ssl: bool = True,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else config.FHIR_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            verify=verify_ssl,
            follow_redirects=True,
            headers={"Accept": "application/fhir+json", **(headers or {})},
        )

    def _url_for(self, reference: str) -> str:
        if reference.startswith(("http://", "https://")):
            return reference
        if not self.base_url:
            raise ReferenceLookupError(
                f"No FHIR base URL configured to resolve '{reference}'", reference
            )
        return f"{self.base_url}/{reference.lstrip('/')}"

    def exists(self, reference: str) -> bool:
        url = self._url_for(reference)
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise ReferenceLookupError(f"Lookup of '{reference}' failed: {e}", reference) from e

        if response.status_code < 400:
            return True
        if response.status_code in (404, 410):
            logger.debug(f"Reference {reference} not found ({response.status_code})")
            return False
        raise ReferenceLookupError(
            f"Lookup of '{reference}' returned status {response.status_code}",
            reference,
            status_code=response.status_code,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpReferenceLookup":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
