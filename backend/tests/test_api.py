def _recorded_run(db_session, email, status=None):
    from signals.observability.recorder import EmailPipelineRecorder

    recorder = EmailPipelineRecorder.start_for(db_session, email, trigger="gmail_sync", mode="execute")
    recorder.event("decision_input_build", "success", output_payload={"matched": True})
    recorder.event("execute_create_round", "skipped", metadata={"why": "test"})
    if status == "success":
        recorder.finish_success({"ok": True})
    return recorder.run_id


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_list_runs_newest_first_with_filters(client, db_session, make_email):
    first_email = make_email()
    second_email = make_email(thread_id="thread-2")
    older = _recorded_run(db_session, first_email, status="success")
    newer = _recorded_run(db_session, second_email)

    resp = client.get("/api/signals/runs")
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [newer, older]

    resp = client.get("/api/signals/runs", params={"synced_email_id": first_email.id})
    assert [r["id"] for r in resp.json()] == [older]
    assert resp.json()[0]["metadata"] == {"ok": True}

    resp = client.get("/api/signals/runs", params={"status": "started"})
    assert [r["id"] for r in resp.json()] == [newer]

    assert client.get("/api/signals/runs", params={"limit": 0}).status_code == 422


def test_run_detail_lists_events_in_step_order(client, db_session, make_email):
    run_id = _recorded_run(db_session, make_email())

    resp = client.get(f"/api/signals/runs/{run_id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == run_id
    assert [(e["step_order"], e["event_type"], e["status"]) for e in body["events"]] == [
        (1, "decision_input_build", "success"),
        (2, "execute_create_round", "skipped"),
    ]
    assert body["events"][0]["output_payload"] == {"matched": True}
    assert body["events"][1]["metadata"] == {"why": "test"}


def test_unknown_run_is_404(client):
    resp = client.get("/api/signals/runs/12345")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Run not found"}
