from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from riskreport_cli.client import ComplianceApiClient, as_list
from riskreport_cli.exceptions import (
    ApiError,
    AuthenticationError,
    ConflictWrite,
    NotFound,
    RiskReportError,
)
from riskreport_cli.models.config import AppConfig


def _make_client() -> ComplianceApiClient:
    config = AppConfig(
        api_url="https://grc.example.com/api/",
        bearer_token="test-token",
        organization="Acme Corp",
    )
    return ComplianceApiClient(config)


def _mock_response(status_code: int = 200, json_data: object = None) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.content = b"{}"
    resp.json.return_value = json_data if json_data is not None else {}
    resp.raise_for_status = MagicMock()
    return resp


class TestClientHeaders:
    def test_session_headers(self) -> None:
        client = _make_client()
        headers = client._session.headers
        assert headers["Authorization"] == "Bearer test-token"
        assert headers["Accept"] == "application/json"
        assert "riskreport-cli/" in headers["User-Agent"]


class TestGet:
    def test_get_success(self) -> None:
        client = _make_client()
        mock_resp = _mock_response(200, {"id": 1, "assessment_name": "Q2"})
        with patch.object(client._session, "request", return_value=mock_resp) as mock_req:
            result = client.get("assessments/1")
        mock_req.assert_called_once_with(
            "GET", "https://grc.example.com/api/assessments/1", params=None,
        )
        assert result == {"id": 1, "assessment_name": "Q2"}

    def test_get_strips_leading_slash(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response()) as mock_req:
            client.get("/threats/4")
        mock_req.assert_called_once_with(
            "GET", "https://grc.example.com/api/threats/4", params=None,
        )

    def test_register_filter_param(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response(200, [])) as mock_req:
            client.list_risk_register(assessment_id=3)
        mock_req.assert_called_once_with(
            "GET", "https://grc.example.com/api/risk-register",
            params={"assessment_id": "3"},
        )

    def test_envelope_is_unwrapped(self) -> None:
        client = _make_client()
        mock_resp = _mock_response(200, {"success": True, "data": [{"id": 7}]})
        with patch.object(client._session, "request", return_value=mock_resp):
            assert client.list_threats(1) == [{"id": 7}]

    def test_rejected_envelope(self) -> None:
        client = _make_client()
        mock_resp = _mock_response(200, {"success": False, "message": "Assessment locked"})
        with patch.object(client._session, "request", return_value=mock_resp):
            with pytest.raises(ApiError, match="Assessment locked"):
                client.get_assessment(1)


class TestPut:
    def test_put_sends_body(self) -> None:
        client = _make_client()
        body = {"implementation_status": "at_risk"}
        with patch.object(client._session, "request", return_value=_mock_response()) as mock_req:
            client.save_control_assessment(1, 2, body)
        mock_req.assert_called_once_with(
            "PUT", "https://grc.example.com/api/assessments/1/controls/2", json=body,
        )


class TestErrorHandling:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failure(self, status: int) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response(status)):
            with pytest.raises(AuthenticationError, match="bearer token"):
                client.get("assessments/1")

    def test_not_found(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response(404)):
            with pytest.raises(NotFound, match="threat-models/9"):
                client.get_threat_model(9)

    def test_conflict(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response(409)):
            with pytest.raises(ConflictWrite):
                client.update_risk_entry(1, {"notes": "x"})

    def test_server_error(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response(502)):
            with pytest.raises(ApiError, match="server error"):
                client.get("assessments/1")

    def test_other_client_error(self) -> None:
        client = _make_client()
        mock_resp = _mock_response(422)
        mock_resp.raise_for_status.side_effect = requests.HTTPError("422")
        with patch.object(client._session, "request", return_value=mock_resp):
            with pytest.raises(ApiError, match="422"):
                client.post("risk-register", json={})

    def test_connection_error(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", side_effect=requests.ConnectionError()):
            with pytest.raises(ApiError, match="Cannot connect"):
                client.get("assessments/1")

    def test_invalid_json(self) -> None:
        client = _make_client()
        mock_resp = _mock_response(200)
        mock_resp.json.side_effect = ValueError("bad json")
        with patch.object(client._session, "request", return_value=mock_resp):
            with pytest.raises(ApiError, match="Expected JSON"):
                client.get("assessments/1")

    def test_errors_share_base_class(self) -> None:
        assert issubclass(AuthenticationError, ApiError)
        assert issubclass(ConflictWrite, RiskReportError)


class TestEmptyResponses:
    def test_no_content(self) -> None:
        client = _make_client()
        with patch.object(client._session, "request", return_value=_mock_response(204)):
            assert client.delete_risk_entry(3) is None

    def test_empty_body(self) -> None:
        client = _make_client()
        mock_resp = _mock_response(200)
        mock_resp.content = b""
        with patch.object(client._session, "request", return_value=mock_resp):
            assert client.get("assessments/1") is None


class TestAsList:
    def test_plain_list(self) -> None:
        assert as_list([{"id": 1}, "junk"]) == [{"id": 1}]

    def test_nested_key(self) -> None:
        assert as_list({"threats": [{"id": 2}]}, "items", "threats") == [{"id": 2}]

    def test_anything_else(self) -> None:
        assert as_list(None) == []
        assert as_list({"count": 3}, "items") == []
