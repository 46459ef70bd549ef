AS_U1 = {"X-User-Id": "u1"}


def test_send_requires_identity(client, stub_queue):
    response = client.post("/email/send", json={"to": "a@example.com", "subject": "Hi", "text": "x"})

    assert response.status_code == 401
    assert stub_queue.calls == []


def test_send_rejects_incomplete_messages(client, stub_queue):
    response = client.post("/email/send", json={"to": "a@example.com", "subject": "Hi"}, headers=AS_U1)

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields (to, subject, and either text or html)"
    assert stub_queue.calls == []


def test_send_queues_email_job(client, stub_queue):
    response = client.post(
        "/email/send",
        json={"to": ["a@example.com"], "subject": "Hi", "html": "<p>Hi</p>"},
        headers=AS_U1,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "job_id": "job-1"}
    assert stub_queue.calls == [
        ("email", {"to": ["a@example.com"], "subject": "Hi", "html": "<p>Hi</p>"})
    ]


def test_send_rejects_blank_subject_and_blank_recipients(client, stub_queue):
    blank_subject = client.post(
        "/email/send",
        json={"to": "a@example.com", "subject": "   ", "text": "Body"},
        headers=AS_U1,
    )
    blank_recipients = client.post(
        "/email/send",
        json={"to": ["", "  "], "subject": "Hi", "text": "Body"},
        headers=AS_U1,
    )

    assert blank_subject.status_code == 400
    assert blank_recipients.status_code == 400
    assert stub_queue.calls == []


def test_queued_payload_is_accepted_by_the_email_handler(client, stub_queue, tmp_path):
    from serverlister.jobs.handlers import EmailJobHandler
    from serverlister.notify.adapters.email_smtp import EmailSMTPAdapter

    from test_email_adapter import SMTPFactory

    client.post(
        "/email/send",
        json={"to": ["a@example.com", ""], "subject": "Hi", "text": "Body"},
        headers=AS_U1,
    )

    _, payload = stub_queue.calls[0]
    assert payload["to"] == ["a@example.com"]
    smtp_factory = SMTPFactory()
    handler = EmailJobHandler(
        EmailSMTPAdapter(host="smtp.test", port=587, templates_dir=tmp_path, smtp_factory=smtp_factory)
    )
    assert handler(payload)["to"] == ["a@example.com"]
