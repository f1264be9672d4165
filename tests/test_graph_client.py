"""
Tests for the read-only Graph client (paging, throttling, token refresh).
"""

from unittest.mock import MagicMock, patch

import pytest

from handlers.graph.client import (
    GRAPH_ROOT,
    GraphClient,
    GraphRequestError,
    TokenAcquisitionError,
    AzCliTokenProvider,
    fncBuildGraphClient,
)


class TestGetAll:
    """Paging behaviour of GraphClient.get_all."""

    def test_follows_next_link_and_preserves_order(self, token_provider, make_response):
        session = MagicMock()
        session.get.side_effect = [
            make_response(payload={"value": [{"id": "1"}, {"id": "2"}], "@odata.nextLink": "https://next/page2"}),
            make_response(payload={"value": [{"id": "3"}], "@odata.nextLink": "https://next/page3"}),
            make_response(payload={"value": [{"id": "4"}]}),
        ]
        client = GraphClient(token_provider, session=session)

        items = client.get_all("devices")

        assert [i["id"] for i in items] == ["1", "2", "3", "4"]
        urls = [c.args[0] for c in session.get.call_args_list]
        assert urls == [f"{GRAPH_ROOT}/devices", "https://next/page2", "https://next/page3"]

    def test_page_failure_raises(self, token_provider, make_response):
        session = MagicMock()
        session.get.side_effect = [
            make_response(payload={"value": [{"id": "1"}], "@odata.nextLink": "https://next/page2"}),
            make_response(status=500, text="boom"),
        ]
        client = GraphClient(token_provider, session=session)

        with pytest.raises(GraphRequestError) as exc:
            client.get_all("devices")
        assert exc.value.status == 500
        assert exc.value.url == "https://next/page2"

    def test_single_object_is_wrapped(self, token_provider, make_response):
        session = MagicMock()
        session.get.return_value = make_response(payload={"id": "g1", "displayName": "Group"})
        client = GraphClient(token_provider, session=session)

        assert client.get_all("groups/g1") == [{"id": "g1", "displayName": "Group"}]

    def test_empty_body_yields_no_items(self, token_provider, make_response):
        session = MagicMock()
        session.get.return_value = make_response(status=204)
        client = GraphClient(token_provider, session=session)

        assert client.get_all("devices") == []


class TestRetries:
    """One throttling sleep and one token refresh, nothing more."""

    def test_429_sleeps_once_then_succeeds(self, token_provider, make_response):
        session = MagicMock()
        session.get.side_effect = [
            make_response(status=429, headers={"Retry-After": "2"}),
            make_response(payload={"value": []}),
        ]
        client = GraphClient(token_provider, session=session)

        with patch("handlers.graph.client.time.sleep") as sleep:
            assert client.get_all("devices") == []
        sleep.assert_called_once_with(2)

    def test_429_with_http_date_uses_default_delay(self, token_provider, make_response):
        session = MagicMock()
        session.get.side_effect = [
            make_response(status=429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            make_response(payload={"value": [{"id": "1"}]}),
        ]
        client = GraphClient(token_provider, session=session)

        with patch("handlers.graph.client.time.sleep") as sleep:
            assert client.get_all("devices") == [{"id": "1"}]
        sleep.assert_called_once_with(5)

    def test_second_429_raises(self, token_provider, make_response):
        session = MagicMock()
        session.get.return_value = make_response(status=429, headers={"Retry-After": "1"})
        client = GraphClient(token_provider, session=session)

        with patch("handlers.graph.client.time.sleep"):
            with pytest.raises(GraphRequestError):
                client.get("devices")
        assert session.get.call_count == 2

    def test_401_refreshes_token_once(self, token_provider, make_response):
        session = MagicMock()
        session.get.side_effect = [
            make_response(status=401),
            make_response(payload={"value": [{"id": "x"}]}),
        ]
        client = GraphClient(token_provider, session=session)

        assert client.get_all("devices") == [{"id": "x"}]
        # first acquire on the initial request, second for the refresh
        assert token_provider.acquire.call_count == 2

    def test_token_sent_as_bearer(self, token_provider, make_response):
        session = MagicMock()
        session.get.return_value = make_response(payload={"value": []})
        client = GraphClient(token_provider, session=session)

        client.get("devices")
        headers = session.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok"


class TestTokenProviders:
    def test_az_cli_missing_raises(self):
        provider = AzCliTokenProvider(az_path="/nonexistent/az")
        with patch("handlers.graph.client.subprocess.run", side_effect=FileNotFoundError("az")):
            with pytest.raises(TokenAcquisitionError):
                provider.acquire()

    def test_az_cli_parses_token(self):
        provider = AzCliTokenProvider(az_path="az")
        done = MagicMock(returncode=0, stdout='{"accessToken": "abc", "expires_on": 1700000000}', stderr="")
        with patch("handlers.graph.client.subprocess.run", return_value=done):
            assert provider.acquire() == {"access_token": "abc", "expires_on": 1700000000}

    def test_msal_mode_requires_credentials(self):
        with pytest.raises(TokenAcquisitionError) as exc:
            fncBuildGraphClient({"auth": "msal", "tenant_id": "t"})
        assert "client_id" in str(exc.value)
