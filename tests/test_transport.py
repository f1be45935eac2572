"""
Tests for the requests-backed transport.
"""

from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from mangalnet.retrieval.errors import ErrorCode, RetrievalError
from mangalnet.retrieval.transport import HttpTransport, parse_content_range


def _response(status=200, payload=None, headers=None, json_error=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    s = requests.Session()
    s.get = MagicMock()
    return s


@pytest.fixture
def transport(session):
    return HttpTransport(base_url="http://mangal.test/api/v2/", timeout=2.5, session=session)


class TestParseContentRange:
    """Tests for parse_content_range()."""

    @pytest.mark.parametrize("value,expected", [
        ("network 0-99/1329", 1329),
        ("interaction 0-0/1", 1),
        ("network */0", 0),
        ("node 0-9/ 12 ", 12),
    ])
    def test_totals(self, value, expected):
        assert parse_content_range(value) == expected

    @pytest.mark.parametrize("value", [None, "", "network 0-99", "network 0-99/*"])
    def test_unusable(self, value):
        assert parse_content_range(value) is None


class TestHttpTransport:
    """Tests for HttpTransport.get()."""

    def test_url_and_params(self, transport, session):
        session.get.return_value = _response(payload=[{"id": 1}], headers={"Content-Range": "network 0-0/1"})

        resp = transport.get("network", [("count", "1"), ("page", "0"), ("type", "predation")])

        session.get.assert_called_once_with(
            "http://mangal.test/api/v2/network",
            params=[("count", "1"), ("page", "0"), ("type", "predation")],
            timeout=2.5,
        )
        assert resp.payload == [{"id": 1}]
        assert resp.headers["content-range"] == "network 0-0/1"
        assert resp.status == 200

    def test_sets_default_headers(self, transport, session):
        assert session.headers["Accept"] == "application/json"
        assert "User-Agent" in session.headers

    def test_timeout_mapped(self, transport, session):
        session.get.side_effect = requests.Timeout("slow")

        with pytest.raises(RetrievalError) as exc_info:
            transport.get("network/42")

        err = exc_info.value
        assert err.error_code is ErrorCode.TIMEOUT
        assert err.retryable
        assert isinstance(err.cause, requests.Timeout)

    def test_connection_error_mapped(self, transport, session):
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RetrievalError) as exc_info:
            transport.get("network")

        assert exc_info.value.error_code is ErrorCode.TRANSPORT
        assert exc_info.value.retryable

    @pytest.mark.parametrize("status", [404, 500, 503])
    def test_http_error_status(self, transport, session, status):
        session.get.return_value = _response(status=status)

        with pytest.raises(RetrievalError) as exc_info:
            transport.get("node/7")

        assert exc_info.value.status == status
        assert str(status) in exc_info.value.message

    def test_non_json_body(self, transport, session):
        session.get.return_value = _response(json_error=ValueError("not json"))

        with pytest.raises(RetrievalError) as exc_info:
            transport.get("network")

        assert exc_info.value.error_code is ErrorCode.TRANSPORT
        assert "non-JSON" in exc_info.value.message

    def test_close_leaves_borrowed_session_open(self, transport, session):
        session.close = MagicMock()
        transport.close()
        session.close.assert_not_called()

    def test_close_owned_session(self):
        transport = HttpTransport(base_url="http://mangal.test")
        transport.session.close = MagicMock()
        transport.close()
        transport.session.close.assert_called_once()
