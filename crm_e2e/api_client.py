"""REST data API client for test data setup and verification.

Scenarios use the UI for the behaviour under test and this client for
everything around it: seeding records, creating users, looking up ids and
checking what the UI saved.

Usage:
    credential = bootstrapper.acquire_credential()
    with CrmRestClient(credential) as api:
        account_id = api.create_record("Account", {"Name": "Acme"})
        rows = api.query(f"SELECT Id FROM Account WHERE Name = {soql_literal('Acme')}")
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from crm_e2e.config import settings
from crm_e2e.errors import CrmApiError
from crm_e2e.models import Credential

logger = logging.getLogger(__name__)


def soql_literal(value: str) -> str:
    """Quote ``value`` as a SOQL string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass
class UserSpec:
    """Fields needed to create a platform user."""

    first_name: str
    last_name: str
    email: str
    username: str
    profile_id: str
    alias: str = ""
    time_zone: str = "America/Los_Angeles"
    locale: str = "en_US"
    email_encoding: str = "UTF-8"
    language: str = "en_US"

    def to_record(self) -> dict[str, Any]:
        alias = self.alias or (self.first_name[:1] + self.last_name)[:8]
        return {
            "FirstName": self.first_name,
            "LastName": self.last_name,
            "Email": self.email,
            "Username": self.username,
            "Alias": alias,
            "TimeZoneSidKey": self.time_zone,
            "LocaleSidKey": self.locale,
            "EmailEncodingKey": self.email_encoding,
            "ProfileId": self.profile_id,
            "LanguageLocaleKey": self.language,
        }


class CrmRestClient:
    """Synchronous, bearer-authenticated client for the REST data API.

    Args:
        credential: Token and instance from the session bootstrapper
        api_version: API version without the leading "v" (default: active profile)
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        credential: Credential,
        api_version: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.instance_url = credential.instance_url.rstrip("/")
        self.api_version = api_version or settings.api_version
        self.base_url = f"{self.instance_url}/services/data/v{self.api_version}"
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {credential.access_token}",
                "Accept": "application/json",
            },
        )

    def __enter__(self) -> CrmRestClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _url(self, endpoint: str) -> str:
        # nextRecordsUrl comes back rooted at the instance
        if endpoint.startswith("/services/"):
            return f"{self.instance_url}{endpoint}"
        return f"{self.base_url}{endpoint}"

    def request(self, method: str, endpoint: str, json: Any = None) -> Any:
        """Send a request and return the decoded body ({} when there is none)."""
        url = self._url(endpoint)
        try:
            response = self._client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            raise CrmApiError(f"{method} {endpoint} failed: {exc}") from exc

        if response.status_code >= 400:
            raise CrmApiError(
                f"{method} {endpoint} returned {response.status_code}: {response.text[:300]}",
                status=response.status_code,
                body=response.text,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # ---- records ----------------------------------------------------------------
    def query(self, soql: str) -> list[dict[str, Any]]:
        """Run ``soql`` and return every record, following pagination."""
        data = self.request("GET", f"/query?q={quote(soql, safe='')}")
        records = list(data.get("records", []))
        while not data.get("done", True) and data.get("nextRecordsUrl"):
            data = self.request("GET", data["nextRecordsUrl"])
            records.extend(data.get("records", []))
        return records

    def create_record(self, object_name: str, fields: dict[str, Any]) -> str:
        data = self.request("POST", f"/sobjects/{object_name}", json=fields)
        if not data.get("success", True) or not data.get("id"):
            raise CrmApiError(f"Creating {object_name} failed: {data.get('errors')}")
        logger.info(f"Created {object_name} {data['id']}")
        return data["id"]

    def get_record(self, object_name: str, record_id: str, fields: list[str] | None = None) -> dict[str, Any]:
        endpoint = f"/sobjects/{object_name}/{record_id}"
        if fields:
            endpoint += "?fields=" + ",".join(fields)
        return self.request("GET", endpoint)

    def update_record(self, object_name: str, record_id: str, fields: dict[str, Any]) -> None:
        self.request("PATCH", f"/sobjects/{object_name}/{record_id}", json=fields)

    def delete_record(self, object_name: str, record_id: str) -> None:
        self.request("DELETE", f"/sobjects/{object_name}/{record_id}")
        logger.info(f"Deleted {object_name} {record_id}")

    def find_record_id(self, object_name: str, name: str) -> str | None:
        rows = self.query(f"SELECT Id FROM {object_name} WHERE Name = {soql_literal(name)} LIMIT 1")
        return rows[0]["Id"] if rows else None

    # ---- users ------------------------------------------------------------------
    def get_profile_id_by_name(self, profile_name: str) -> str:
        rows = self.query(f"SELECT Id FROM Profile WHERE Name = {soql_literal(profile_name)} LIMIT 1")
        if not rows:
            raise CrmApiError(f"Profile not found: {profile_name}")
        return rows[0]["Id"]

    def get_user_id_by_username(self, username: str) -> str | None:
        rows = self.query(f"SELECT Id FROM User WHERE Username = {soql_literal(username)} LIMIT 1")
        return rows[0]["Id"] if rows else None

    def create_user(self, spec: UserSpec) -> str:
        return self.create_record("User", spec.to_record())

    def set_user_password(self, user_id: str, password: str) -> None:
        self.request("POST", f"/sobjects/User/{user_id}/password", json={"NewPassword": password})

    def deactivate_user(self, user_id: str) -> None:
        # Users cannot be deleted, only deactivated
        self.update_record("User", user_id, {"IsActive": False})

    def assign_permission_set(self, user_id: str, permission_set_name: str) -> str:
        rows = self.query(
            f"SELECT Id FROM PermissionSet WHERE Name = {soql_literal(permission_set_name)} LIMIT 1"
        )
        if not rows:
            raise CrmApiError(f"Permission set not found: {permission_set_name}")
        return self.create_record(
            "PermissionSetAssignment", {"AssigneeId": user_id, "PermissionSetId": rows[0]["Id"]}
        )

    def user_has_permission_set(self, user_id: str, permission_set_name: str) -> bool:
        rows = self.query(
            "SELECT Id FROM PermissionSetAssignment "
            f"WHERE AssigneeId = {soql_literal(user_id)} "
            f"AND PermissionSet.Name = {soql_literal(permission_set_name)} LIMIT 1"
        )
        return bool(rows)

    def get_org_id(self) -> str:
        rows = self.query("SELECT Id FROM Organization LIMIT 1")
        if not rows:
            raise CrmApiError("Organization record not visible to this user")
        return rows[0]["Id"]
