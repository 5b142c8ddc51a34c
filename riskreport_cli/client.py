from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from riskreport_cli import __version__
from riskreport_cli.exceptions import ApiError, AuthenticationError, ConflictWrite, NotFound
from riskreport_cli.models.config import AppConfig


class ComplianceApiClient:
    def __init__(self, config: AppConfig) -> None:
        self._base_url = config.api_url
        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {config.bearer_token}",
            "User-Agent": f"riskreport-cli/{__version__}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("POST", path, json=json)

    def put(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("PUT", path, json=json)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def get_assessment(self, assessment_id: int) -> Any:
        return self.get(f"/assessments/{assessment_id}")

    def list_control_assessments(self, assessment_id: int) -> Any:
        return self.get(f"/assessments/{assessment_id}/controls")

    def get_control_assessment(self, assessment_id: int, control_id: int) -> Any:
        return self.get(f"/assessments/{assessment_id}/controls/{control_id}")

    def save_control_assessment(self, assessment_id: int, control_id: int, body: Dict[str, Any]) -> Any:
        return self.put(f"/assessments/{assessment_id}/controls/{control_id}", json=body)

    def list_controls(self) -> Any:
        return self.get("/nist-csf/controls")

    def get_control(self, control_id: int) -> Any:
        return self.get(f"/nist-csf/controls/{control_id}")

    def get_organization(self, organization_id: int) -> Any:
        return self.get(f"/organizations/{organization_id}")

    def get_threat_model(self, threat_model_id: int) -> Any:
        return self.get(f"/threat-models/{threat_model_id}")

    def list_threats(self, threat_model_id: int) -> Any:
        return self.get(f"/threat-models/{threat_model_id}/threats")

    def list_assets(self, threat_model_id: int) -> Any:
        return self.get(f"/threat-models/{threat_model_id}/assets")

    def get_threat(self, threat_id: int) -> Any:
        return self.get(f"/threats/{threat_id}")

    def update_threat(self, threat_id: int, body: Dict[str, Any]) -> Any:
        return self.put(f"/threats/{threat_id}", json=body)

    def list_mitigations(self, threat_id: int) -> Any:
        return self.get(f"/threats/{threat_id}/mitigations")

    def get_mitigation(self, mitigation_id: int) -> Any:
        return self.get(f"/mitigations/{mitigation_id}")

    def update_mitigation(self, mitigation_id: int, body: Dict[str, Any]) -> Any:
        return self.put(f"/mitigations/{mitigation_id}", json=body)

    def list_risk_register(self, assessment_id: Optional[int] = None) -> Any:
        params = {"assessment_id": str(assessment_id)} if assessment_id is not None else None
        return self.get("/risk-register", params=params)

    def get_risk_entry(self, entry_id: int) -> Any:
        return self.get(f"/risk-register/{entry_id}")

    def create_risk_entry(self, body: Dict[str, Any]) -> Any:
        return self.post("/risk-register", json=body)

    def update_risk_entry(self, entry_id: int, body: Dict[str, Any]) -> Any:
        return self.put(f"/risk-register/{entry_id}", json=body)

    def delete_risk_entry(self, entry_id: int) -> Any:
        return self.delete(f"/risk-register/{entry_id}")

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        normalized_path = path.lstrip("/")
        url = self._base_url + normalized_path
        try:
            response = self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise ApiError(
                f"Cannot connect to {self._base_url}. "
                "Check your network connection and API URL."
            ) from exc

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Authentication failed. Your bearer token may have expired. "
                "Run riskreport-cli --init to set a new token."
            )
        if response.status_code == 404:
            raise NotFound(f"Resource not found: {normalized_path}.")
        if response.status_code == 409:
            raise ConflictWrite(
                f"Concurrent modification of {normalized_path}. Reload and try again."
            )
        if response.status_code >= 500:
            raise ApiError(
                f"Compliance platform server error ({response.status_code}). "
                "Please try again later."
            )

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise ApiError(
                f"API request failed ({response.status_code}) for {normalized_path}. "
                "Please verify the request and try again."
            ) from exc

        if response.status_code == 204 or not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(
                f"Invalid response from API for {normalized_path}. Expected JSON data."
            ) from exc
        return _unwrap(payload, normalized_path)


def _unwrap(payload: Any, path: str) -> Any:
    """Return the ``data`` member of a ``{success, data}`` envelope."""
    if not isinstance(payload, dict) or "success" not in payload:
        return payload
    if not payload.get("success"):
        message = payload.get("message") or payload.get("error") or "unknown error"
        raise ApiError(f"API request for {path} was rejected: {message}")
    return payload.get("data")


def as_list(value: Any, *keys: str) -> List[Dict[str, Any]]:
    """Extract a list of records from a response that may nest it under *keys*."""
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    if isinstance(value, dict):
        for key in keys:
            nested = value.get(key)
            if isinstance(nested, list):
                return [item for item in nested if isinstance(item, dict)]
    return []
