"""Client for the Docker v2 API."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Self

from httpx import AsyncClient, HTTPError, Response
from structlog.stdlib import BoundLogger

from ..constants import MANIFEST_ACCEPT
from ..exceptions import DockerRegistryError
from ..models.domain.docker import DockerCredentials, DockerReference
from ..models.domain.manifest import RawManifest
from ..timeout import Timeout

__all__ = [
    "DockerCredentialStore",
    "DockerStorageClient",
]

_CHALLENGE_PARAM_REGEX = re.compile(r'(\w+)="([^"]*)"')
"""Parameters of a ``WWW-Authenticate`` challenge."""


class DockerCredentialStore:
    """Read the ``.dockerconfigjson`` syntax used by Kubernetes."""

    @classmethod
    def from_path(cls, path: Path) -> Self:
        """Load credentials for Docker API hosts from a file.

        Parameters
        ----------
        path
            Path to file containing credentials.

        Returns
        -------
        DockerCredentialStore
            The resulting credential store.
        """
        with path.open("r") as f:
            credentials_data = json.load(f)
        credentials = {}
        for host, config in credentials_data["auths"].items():
            credentials[host] = DockerCredentials.from_config(config)
        return cls(credentials)

    def __init__(self, credentials: dict[str, DockerCredentials]) -> None:
        self._credentials = credentials

    def get(self, host: str) -> DockerCredentials | None:
        """Get credentials for a given host.

        These may be domain credentials, so if there is no exact match, return
        the credentials for any parent domain found.

        Parameters
        ----------
        host
            Host to which to authenticate.

        Returns
        -------
        DockerCredentials or None
            The corresponding credentials or `None` if there are no
            credentials in the store for that host.
        """
        credentials = self._credentials.get(host)
        if credentials:
            return credentials
        for domain, credentials in self._credentials.items():
            if host.endswith(f".{domain}"):
                return credentials
        return None


class DockerStorageClient:
    """Client to retrieve image manifests and configurations.

    The client is shared by all filter invocations. Its only state is the
    cache of authorization headers, which is safe to share since a stale or
    missing entry only causes another authentication round trip.

    Parameters
    ----------
    credentials
        Credentials for Docker API hosts.
    http_client
        Client to use to make requests.
    logger
        Logger for log messages.
    """

    def __init__(
        self,
        *,
        credentials: DockerCredentialStore,
        http_client: AsyncClient,
        logger: BoundLogger,
    ) -> None:
        self._credentials = credentials
        self._client = http_client
        self._logger = logger

        # Cached authorization headers by registry and repository. Bearer
        # tokens are scoped to a repository, so they cannot be shared across
        # repositories on the same registry.
        self._authorization: dict[tuple[str, str], str] = {}

    async def get_manifest(
        self, reference: DockerReference, timeout: Timeout
    ) -> RawManifest:
        """Retrieve the manifest for an image.

        Parameters
        ----------
        reference
            Image whose manifest should be retrieved.
        timeout
            Deadline for the request.

        Returns
        -------
        RawManifest
            Manifest body and media type.

        Raises
        ------
        DockerRegistryError
            Unable to retrieve the manifest from the Docker Registry.
        TimeoutError
            Raised if the deadline passed before the request was started.
        """
        url = (
            f"https://{reference.api_host}/v2/{reference.repository}"
            f"/manifests/{reference.manifest_reference}"
        )
        r = await self._get(reference, url, MANIFEST_ACCEPT, timeout)
        manifest = RawManifest(
            data=r.content, media_type=r.headers.get("Content-Type")
        )
        self._logger.debug(
            "Retrieved image manifest",
            image=str(reference),
            media_type=manifest.media_type,
        )
        return manifest

    async def get_blob(
        self, reference: DockerReference, digest: str, timeout: Timeout
    ) -> bytes:
        """Retrieve a blob, such as an image configuration.

        Parameters
        ----------
        reference
            Image to which the blob belongs.
        digest
            Digest of the blob.
        timeout
            Deadline for the request.

        Returns
        -------
        bytes
            Contents of the blob.

        Raises
        ------
        DockerRegistryError
            Unable to retrieve the blob from the Docker Registry.
        TimeoutError
            Raised if the deadline passed before the request was started.
        """
        url = (
            f"https://{reference.api_host}/v2/{reference.repository}"
            f"/blobs/{digest}"
        )
        r = await self._get(reference, url, "*/*", timeout)
        self._logger.debug(
            "Retrieved image blob", image=str(reference), digest=digest
        )
        return r.content

    async def _get(
        self,
        reference: DockerReference,
        url: str,
        accept: str,
        timeout: Timeout,
    ) -> Response:
        """Make a GET request, authenticating if challenged.

        A challenge is answered even if there are cached credentials for
        this repository, since bearer tokens expire. If the retried request
        is also rejected, the request fails.
        """
        host = reference.api_host
        scope = (host, reference.repository)
        headers = self._build_headers(scope, accept)
        try:
            r = await self._client.get(
                url,
                headers=headers,
                follow_redirects=True,
                timeout=timeout.left("Registry request"),
            )
            if r.status_code == 401:
                await self._authenticate(scope, r, timeout)
                headers = self._build_headers(scope, accept)
                r = await self._client.get(
                    url,
                    headers=headers,
                    follow_redirects=True,
                    timeout=timeout.left("Registry request"),
                )
            r.raise_for_status()
        except HTTPError as e:
            raise DockerRegistryError.from_exception(e) from e
        return r

    async def _authenticate(
        self, scope: tuple[str, str], response: Response, timeout: Timeout
    ) -> None:
        """Authenticate after getting an auth challenge.

        Stores the authorization header to use for subsequent requests. The
        caller should then retry the request.

        Parameters
        ----------
        scope
            The host and repository to which we're making the request. The
            host is the key to find Docker credentials to use for
            authentication.
        response
            The response from the server that includes an auth challenge.
        timeout
            Deadline for any token request.

        Raises
        ------
        DockerRegistryError
            Some failure in talking to the Docker registry API server.
        """
        host, _ = scope
        self._authorization.pop(scope, None)
        credentials = self._credentials.get(host)

        challenge = response.headers.get("WWW-Authenticate")
        if not challenge:
            msg = f"Docker API 401 response from {host} contains no challenge"
            raise DockerRegistryError(msg)
        challenge_type, _, params = challenge.partition(" ")
        challenge_type = challenge_type.lower()

        if challenge_type == "basic":
            if not credentials:
                msg = f"No Docker API credentials available for {host}"
                raise DockerRegistryError(msg)
            self._authorization[scope] = credentials.authorization
            self._logger.debug(
                "Authenticated to Docker API with basic auth",
                registry=host,
                username=credentials.username,
            )
        elif challenge_type == "bearer":
            # Bearer is used by Docker's official registry and most public
            # registries, which issue tokens for anonymous pulls.
            token = await self._get_bearer_token(
                host, credentials, params, timeout
            )
            self._authorization[scope] = f"Bearer {token}"
            self._logger.debug(
                "Authenticated to Docker API with bearer token",
                registry=host,
                username=credentials.username if credentials else None,
            )
        else:
            msg = f'Unknown Docker authentication challenge "{challenge_type}"'
            raise DockerRegistryError(msg)

    def _build_headers(
        self, scope: tuple[str, str], accept: str
    ) -> dict[str, str]:
        """Construct the headers used for a query to a given repository.

        Adds the ``Authorization`` header if we have discovered that this
        repository requires authentication.

        Parameters
        ----------
        scope
            Docker registry API host and repository.
        accept
            Value of the ``Accept`` header.

        Returns
        -------
        dict of str to str
            Headers to pass to this host.
        """
        headers = {"Accept": accept}
        if scope in self._authorization:
            headers["Authorization"] = self._authorization[scope]
        return headers

    async def _get_bearer_token(
        self,
        host: str,
        credentials: DockerCredentials | None,
        challenge_params: str,
        timeout: Timeout,
    ) -> str:
        """Get a bearer token for subsequent API calls.

        Parameters
        ----------
        host
            The host to which we're authenticating.
        credentials
            Authentication credentials, or `None` to request an anonymous
            token.
        challenge_params
            The parameters it sent in the ``WWW-Authenticate`` header.
        timeout
            Deadline for the token request.

        Returns
        -------
        str
            The bearer token to use for subsequent calls to that host.

        Raises
        ------
        DockerRegistryError
            Some failure in talking to the Docker registry API server.
        """
        # We need to reflect the challenge parameters back as query
        # parameters when obtaining our bearer token.
        params = dict(_CHALLENGE_PARAM_REGEX.findall(challenge_params))
        url = params.pop("realm", None)
        if not url:
            msg = f"Docker API bearer challenge from {host} has no realm"
            raise DockerRegistryError(msg)

        auth = None
        if credentials:
            auth = (credentials.username, credentials.password)
        try:
            r = await self._client.get(
                url,
                auth=auth,
                params=params,
                timeout=timeout.left("Registry authentication"),
            )
            r.raise_for_status()
            data = r.json()
            return data.get("token") or data["access_token"]
        except HTTPError as e:
            raise DockerRegistryError.from_exception(e) from e
        except (KeyError, ValueError, AttributeError) as e:
            error = f"{type(e).__name__}: {e!s}"
            msg = f"Cannot parse Docker registry login response: {error}"
            raise DockerRegistryError(msg, method="GET", url=url) from e
