"""
A policy engine reached over HTTP, wraps around httpx.

The remote service is expected to expose:

- POST /identify           {"token"}                       -> {"id"}
- POST /authorize          {subject_type, subject, ...}    -> {"authorized", "id"}
- PUT  /policies           relation tuple                  -> 2xx
- POST /policies/delete    relation tuple                  -> 2xx
- POST /objects            {subject_type, subject, ...}    -> {"policies": [...]}
- POST /subjects           {subject_type, permission, ...} -> {"policies": [...]}
"""

from json import JSONDecodeError
from typing import Any

import httpx

from tuplegate.core.errors import AuthenticationError, UpstreamError
from tuplegate.core.tuples import RelationTuple

from .engine import PolicyEngine


class HTTPPolicyEngine(PolicyEngine):
    base_url: str
    timeout: float

    def __init__(
        self,
        base_url: str,
        timeout: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Parameters
        ----------
        base_url: str
            Root URL of the policy engine.
        timeout: float, optional
            Seconds allowed for each call, applied both at the transport and
            around the whole call by the coordinator.
        transport: httpx.AsyncBaseTransport | None, optional
            Transport override, mostly useful for tests.
        """
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self):
        await self.client.aclose()

    async def _call(self, method: str, url: str, body: dict[str, Any]) -> httpx.Response:
        try:
            response = await self.client.request(method, url, json=body)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Error contacting policy engine at {url}") from e

        if response.status_code >= 500:
            raise UpstreamError(
                f"Policy engine returned {response.status_code} for {url}"
            )

        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            return response.json()
        except JSONDecodeError as e:
            raise UpstreamError("Policy engine returned a malformed response") from e

    async def identify(self, token: str) -> str:
        response = await self._call("POST", "/identify", {"token": token})

        if response.status_code in (401, 403, 404):
            raise AuthenticationError("Token could not be identified")
        if response.status_code != 200:
            raise UpstreamError(f"Unexpected identify status {response.status_code}")

        subject_id = self._json(response).get("id")

        if not subject_id:
            raise AuthenticationError("Token resolved to an empty identity")

        return subject_id

    async def authorize(
        self,
        subject_type: str,
        subject: str,
        permission: str,
        object_type: str,
        object: str,
    ) -> tuple[bool, str]:
        response = await self._call(
            "POST",
            "/authorize",
            {
                "subject_type": subject_type,
                "subject": subject,
                "permission": permission,
                "object_type": object_type,
                "object": object,
            },
        )

        if response.status_code == 403:
            return False, ""
        if response.status_code != 200:
            raise UpstreamError(f"Unexpected authorize status {response.status_code}")

        content = self._json(response)

        return bool(content.get("authorized", False)), content.get("id", "")

    async def add_policy(self, policy: RelationTuple) -> None:
        response = await self._call("PUT", "/policies", policy.model_dump())

        if response.status_code not in (200, 201, 204):
            raise UpstreamError(f"Failed to add policy {policy}")

    async def delete_policy(self, policy: RelationTuple) -> None:
        response = await self._call("POST", "/policies/delete", policy.model_dump())

        if response.status_code not in (200, 204):
            raise UpstreamError(f"Failed to delete policy {policy}")

    async def list_all_objects(
        self, subject_type: str, subject: str, permission: str, object_type: str
    ) -> list[str]:
        response = await self._call(
            "POST",
            "/objects",
            {
                "subject_type": subject_type,
                "subject": subject,
                "permission": permission,
                "object_type": object_type,
            },
        )

        if response.status_code != 200:
            raise UpstreamError(f"Unexpected objects status {response.status_code}")

        return list(self._json(response).get("policies", []))

    async def list_all_subjects(
        self, subject_type: str, permission: str, object_type: str, object: str
    ) -> list[str]:
        response = await self._call(
            "POST",
            "/subjects",
            {
                "subject_type": subject_type,
                "permission": permission,
                "object_type": object_type,
                "object": object,
            },
        )

        if response.status_code != 200:
            raise UpstreamError(f"Unexpected subjects status {response.status_code}")

        return list(self._json(response).get("policies", []))
