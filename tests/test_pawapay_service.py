import pytest
import requests

from services.pawapay_service import PawaPayClient, PawaPayError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload
        self.text = text if text is not None else str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def make_client(**kwargs):
    session = FakeSession(**kwargs)
    return PawaPayClient("token-123", base_url="https://api.sandbox.pawapay.io/", timeout=7, session=session), session


def test_initiate_deposit_posts_request():
    client, session = make_client(response=FakeResponse(payload={"depositId": "d-1", "status": "ACCEPTED"}))
    result = client.initiate_deposit({"depositId": "d-1", "amount": "5000"})
    assert result["status"] == "ACCEPTED"

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://api.sandbox.pawapay.io/deposits"
    assert kwargs["json"] == {"depositId": "d-1", "amount": "5000"}
    assert kwargs["headers"]["Authorization"] == "Bearer token-123"
    assert kwargs["timeout"] == 7


def test_initiate_deposit_http_error():
    client, _ = make_client(response=FakeResponse(status_code=400, text='{"errorMessage": "bad"}'))
    with pytest.raises(PawaPayError) as exc_info:
        client.initiate_deposit({"depositId": "d-1"})
    assert exc_info.value.status_code == 400
    assert exc_info.value.body == '{"errorMessage": "bad"}'


def test_initiate_deposit_without_status_is_an_error():
    client, _ = make_client(response=FakeResponse(payload={"depositId": "d-1"}))
    with pytest.raises(PawaPayError):
        client.initiate_deposit({"depositId": "d-1"})


def test_transport_failure():
    client, _ = make_client(error=requests.Timeout("read timed out"))
    with pytest.raises(PawaPayError):
        client.get_deposit("d-1")


def test_get_deposit_unwraps_list():
    client, session = make_client(response=FakeResponse(payload=[{"depositId": "d-1", "status": "COMPLETED"}]))
    assert client.get_deposit("d-1")["status"] == "COMPLETED"
    assert session.calls[0][1] == "https://api.sandbox.pawapay.io/deposits/d-1"


def test_get_deposit_empty_list():
    client, _ = make_client(response=FakeResponse(payload=[]))
    with pytest.raises(PawaPayError):
        client.get_deposit("d-1")


def test_malformed_body():
    client, _ = make_client(response=FakeResponse(payload=None, text="<html>"))
    with pytest.raises(PawaPayError):
        client.get_deposit("d-1")


def test_lookups_degrade_to_empty_results():
    client, _ = make_client(response=FakeResponse(status_code=503, text="unavailable"))
    assert client.get_active_configuration() == []
    assert client.predict_correspondent("237651234567") is None


def test_predict_correspondent():
    client, session = make_client(response=FakeResponse(payload={"country": "CMR", "correspondent": "MTN_MOMO_CMR"}))
    assert client.predict_correspondent("237651234567") == "MTN_MOMO_CMR"
    assert session.calls[0][2]["json"] == {"msisdn": "237651234567"}
