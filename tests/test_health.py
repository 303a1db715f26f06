"""Tests for the service-level endpoints."""

from __future__ import annotations

from conftest import text_payload


def test_health_reports_dependency_checks(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"] == {"redis": True, "database": True}


def test_health_is_degraded_when_queue_unreachable(client, queue):
    async def down():
        return False

    queue.ping = down

    body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["checks"]["redis"] is False


def test_metrics_expose_submission_counter(client, auth_headers):
    client.post("/evaluate", json=text_payload(), headers=auth_headers)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "evaluation_submissions_total" in response.text
    assert 'route="/evaluate"' in response.text


def test_openapi_documents_error_responses(client):
    schema = client.get("/openapi.json").json()

    submit = schema["paths"]["/evaluate"]["post"]["responses"]
    assert {"200", "202", "400", "401", "429"} <= set(submit)
    status = schema["paths"]["/evaluate/{job_id}/status"]["get"]["responses"]
    assert "404" in status


def test_request_id_is_echoed_or_generated(client):
    echoed = client.get("/health", headers={"X-Request-ID": "abc-123"})
    generated = client.get("/health")

    assert echoed.headers["X-Request-ID"] == "abc-123"
    assert len(generated.headers["X-Request-ID"]) == 32
