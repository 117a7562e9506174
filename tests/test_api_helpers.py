from __future__ import annotations

from extended_api.api_helpers import parse_xml_params, render_xml, request_params


def test_xml_body_reads_back_the_rendered_shape():
    body = render_xml(
        {
            "custom_field": {
                "name": "Severity",
                "possible_values": ["Low", "High"],
                "enumerations": [{"name": "Low", "position": 1}],
                "default_value": None,
            }
        }
    )
    assert parse_xml_params(body) == {
        "custom_field": {
            "name": "Severity",
            "possible_values": ["Low", "High"],
            "enumerations": [{"name": "Low", "position": "1"}],
            "default_value": "",
        }
    }


def test_xml_nil_and_malformed_bodies():
    assert parse_xml_params(b'<issue><notes nil="true"/></issue>') == {"issue": {"notes": None}}
    assert parse_xml_params(b"<issue><subject>") == {}
    assert parse_xml_params(b"   ") == {}


def test_request_params_picks_parser_from_mimetype_and_format(app):
    with app.test_request_context("/issues.xml", method="POST", data="<issue><subject>x</subject></issue>",
                                  content_type="text/xml"):
        assert request_params() == {"issue": {"subject": "x"}}
    with app.test_request_context("/issues.json", method="POST", json={"issue": {"subject": "y"}}):
        assert request_params() == {"issue": {"subject": "y"}}
    with app.test_request_context("/issues.json", method="POST", data="not json", content_type="application/json"):
        assert request_params() == {}
