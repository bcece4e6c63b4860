import json
from dataclasses import dataclass

from pricefeeder.httputil import respond_with_error, respond_with_json
from pricefeeder.legacydec import LegacyDec


@dataclass
class _Payload:
    name: str
    amount: LegacyDec


def test_json_response_status_and_content_type():
    resp = respond_with_json(201, {"a": 1})
    assert resp.status_code == 201
    assert resp.headers["Content-Type"] == "application/json"
    assert json.loads(resp.get_data()) == {"a": 1}


def test_decimal_round_trips_as_string():
    value = LegacyDec.from_str("34.84")
    resp = respond_with_json(200, {"prices": {"ATOM": value}})
    decoded = json.loads(resp.get_data())
    assert LegacyDec.from_str(decoded["prices"]["ATOM"]) == value


def test_dataclass_payload_serialises_fields():
    amount = LegacyDec.from_str("1.5")
    resp = respond_with_json(200, _Payload(name="x", amount=amount))
    decoded = json.loads(resp.get_data())
    assert decoded["name"] == "x"
    assert LegacyDec.from_str(decoded["amount"]) == amount


def test_unserialisable_payload_gives_empty_body():
    resp = respond_with_json(200, {"thing": object()})
    assert resp.status_code == 200
    assert resp.get_data() == b""


def test_error_response_from_exception():
    resp = respond_with_error(400, ValueError("bad input"))
    assert resp.status_code == 400
    assert json.loads(resp.get_data()) == {"error": "bad input"}


def test_error_response_from_string():
    resp = respond_with_error(500, "boom")
    assert json.loads(resp.get_data()) == {"error": "boom"}