from __future__ import annotations

import requests

from project_hub.asana_client import build_task_url, clean_project_id


def test_clean_project_id_strips_quotes():
    assert clean_project_id('"120045" ') == "120045"
    assert clean_project_id("'77'") == "77"
    assert clean_project_id(None) == ""


def test_build_task_url():
    assert build_task_url("1", "2") == "https://app.asana.com/0/1/2"


def test_get_sends_bearer_without_content_type(asana, session, fake_response):
    session.add("GET", "projects/42/tasks", fake_response(200, {"data": [{"gid": "1"}]}))

    response = asana.fetch_tasks_for_project('"42"', "tok", {"opt_fields": "name", "completed": "false"})

    assert response.success is True
    assert response.data == [{"gid": "1"}]
    call = session.calls[0]
    assert call["headers"] == {"Authorization": "Bearer tok"}
    assert call["query"] == {"opt_fields": "name", "completed": "false"}
    assert call["timeout"] == 30


def test_payload_is_wrapped_once_in_data_envelope(asana, session, fake_response):
    session.add("POST", "tasks", fake_response(201, {"data": {"gid": "9"}}))

    asana.call("POST", "tasks", "tok", payload={"name": "Measure"})
    asana.create_task("tok", {"name": "Order"})

    assert session.calls[0]["json"] == {"data": {"name": "Measure"}}
    assert session.calls[1]["json"] == {"data": {"name": "Order"}}
    assert session.calls[0]["headers"]["Content-Type"] == "application/json"


def test_non_2xx_returns_truncated_details(asana, session, fake_response):
    session.add("GET", "projects/7", fake_response(403, text="x" * 800))

    response = asana.get_project("7", "tok")

    assert response.success is False
    assert response.error == "Asana API request failed (HTTP 403)"
    assert response.details == "x" * 500
    assert response.response_code == 403


def test_transport_error_becomes_failed_response(asana, session):
    session.add("GET", "projects/7", requests.ConnectionError("boom"))

    response = asana.get_project("7", "tok")

    assert response.success is False
    assert response.response_code is None
    assert "boom" in response.error


def test_find_user_by_email_matches_case_insensitively(asana, session, fake_response):
    users = [{"gid": "u1", "email": "a@example.com"}, {"gid": "u2", "email": "Pat@Example.com"}]
    session.add("GET", "users", fake_response(200, {"data": users}))

    assert asana.find_user_by_email("pat@example.com", "tok").data["gid"] == "u2"
    assert asana.find_user_by_email("nobody@example.com", "tok").data is None


def test_success_body_without_envelope_yields_no_data(asana, session, fake_response):
    session.add("GET", "projects/1", fake_response(200, [{"gid": "1"}]))
    session.add("GET", "projects/2", fake_response(200, text="42"))
    session.add("GET", "projects/3", fake_response(200, text="<html>"))

    for project_id in ("1", "2", "3"):
        response = asana.get_project(project_id, "tok")
        assert response.success is True
        assert response.data is None
