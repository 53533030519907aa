"""
AirLabs client tests with a mocked requests session.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from flightboard.exceptions import UpstreamError
from flightboard.services.airlabs_client import AirLabsClient
from flightboard.utils.config import FlightBoardConfig


def client_with(body=None, status_error=None, get_error=None, json_error=None, min_interval=0.0):
    response = MagicMock()
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body

    session = MagicMock()
    if get_error is not None:
        session.get.side_effect = get_error
    else:
        session.get.return_value = response

    return AirLabsClient(api_key="key-123", base_url="https://api.test/v9/", min_interval=min_interval,
                         session=session), session


class TestFetch:
    """Test request building and body handling."""

    def test_requests_schedules_with_direction_filter(self):
        client, session = client_with({"response": [{"flight_iata": "UA100"}]})

        records = client.fetch("dep_iata", "SFO")

        assert records == [{"flight_iata": "UA100"}]
        args, kwargs = session.get.call_args
        assert args[0] == "https://api.test/v9/schedules"
        assert kwargs["params"] == {"api_key": "key-123", "dep_iata": "SFO"}
        assert kwargs["timeout"] == 10.0

    def test_body_without_response_is_empty(self):
        client, _ = client_with({"request": {}})
        assert client.fetch("arr_iata", "SFO") == []

    def test_non_list_response_is_empty(self):
        client, _ = client_with({"response": None})
        assert client.fetch("arr_iata", "SFO") == []


class TestErrors:
    """Test mapping of failures to UpstreamError."""

    def test_api_error_body(self):
        client, _ = client_with({"error": {"message": "Unknown api_key", "code": "unknown_api_key"}})
        with pytest.raises(UpstreamError, match="Unknown api_key"):
            client.fetch("dep_iata", "SFO")

    def test_http_error_carries_status(self):
        error = requests.exceptions.HTTPError(response=MagicMock(status_code=429))
        client, _ = client_with(status_error=error)

        with pytest.raises(UpstreamError) as exc_info:
            client.fetch("dep_iata", "SFO")
        assert exc_info.value.status_code == 429

    def test_timeout(self):
        client, _ = client_with(get_error=requests.exceptions.Timeout("slow"))
        with pytest.raises(UpstreamError):
            client.fetch("dep_iata", "SFO")

    def test_connection_error(self):
        client, _ = client_with(get_error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(UpstreamError):
            client.fetch("dep_iata", "SFO")

    def test_invalid_json(self):
        client, _ = client_with(json_error=ValueError("Expecting value"))
        with pytest.raises(UpstreamError):
            client.fetch("dep_iata", "SFO")


class TestRateLimit:
    """Test request spacing."""

    def test_second_request_waits(self):
        client, _ = client_with({"response": []}, min_interval=5.0)

        with patch("flightboard.services.airlabs_client.time.sleep") as sleep:
            client.fetch("dep_iata", "SFO")
            client.fetch("arr_iata", "SFO")

        assert sleep.call_count == 1
        assert 0 < sleep.call_args[0][0] <= 5.0

    def test_no_interval_never_sleeps(self):
        client, _ = client_with({"response": []})

        with patch("flightboard.services.airlabs_client.time.sleep") as sleep:
            client.fetch("dep_iata", "SFO")
            client.fetch("arr_iata", "SFO")

        sleep.assert_not_called()


def test_from_config():
    config = FlightBoardConfig(airlabs_api_key="abc", airlabs_timeout_seconds=3, airlabs_min_interval_seconds=1)
    client = AirLabsClient.from_config(config)

    assert client.api_key == "abc"
    assert client.base_url == "https://airlabs.co/api/v9"
    assert client.timeout == 3
