import io

import pytest
from docx import Document

import documents as documents_module
from db_config import db_documents, db_users

FIELDS = {"Journal": "IEEE Access", "Year": "2024"}


@pytest.fixture
def mails(monkeypatch):
    """Capture the notification mails sent by the documents module"""
    sent = []

    def recorder(kind):
        def _send(*args):
            sent.append((kind, args))
            return True
        return _send

    for kind in ("submitted", "approved", "revisable", "rejected"):
        monkeypatch.setattr(documents_module, f"send_document_{kind}_mail", recorder(kind))
    return sent


def create(client, headers, category_doc, **overrides):
    payload = {"category": category_doc["_id"], "title": "Deep Learning Survey", "fields": dict(FIELDS)}
    payload.update(overrides)
    return client.post('/documents', headers=headers, json=payload)


def submitted(client, headers, category, **overrides):
    response = create(client, headers, category, **overrides)
    assert response.status_code == 201
    return response.get_json()["document"]


def test_create_and_submit_notifies_hod(client, faculty, hod, category, mails):
    user, headers = faculty
    document = submitted(client, headers, category)

    assert document["status"] == "pending"
    assert document["credits"] == 5
    assert document["userName"] == "Asha Patil"
    assert document["department"] == "Computer"
    assert document["categoryName"] == "Publications"
    assert document["submittedAt"]
    assert mails == [("submitted", (hod[0]["email"], "Ravi Kulkarni", "Asha Patil", "Deep Learning Survey"))]


def test_credits_follow_designation(client, make_user, category):
    _, headers = make_user("faculty", department="Computer", designation="Professor")
    assert submitted(client, headers, category)["credits"] == 6


def test_create_validation(client, faculty, category):
    _, headers = faculty
    assert create(client, headers, category, title="  ").status_code == 400
    assert create(client, headers, category, category="missing").status_code == 400

    response = create(client, headers, category, fields={"Journal": "IEEE Access"})
    assert response.status_code == 400
    assert "Year" in response.get_json()["error"]


def test_draft_skips_field_validation(client, faculty, category, mails):
    _, headers = faculty
    response = create(client, headers, category, fields={}, asDraft=True)
    assert response.status_code == 201
    document = response.get_json()["document"]
    assert document["status"] == "draft"
    assert document["submittedAt"] is None
    assert mails == []

    # Submitting an incomplete draft is refused
    response = client.post(f'/documents/{document["id"]}/submit', headers=headers)
    assert response.status_code == 400


def test_admin_cannot_submit_documents(client, admin, category):
    _, headers = admin
    assert create(client, headers, category).status_code == 403


def test_update_and_submit_draft(client, faculty, category, mails):
    _, headers = faculty
    draft = create(client, headers, category, fields={}, asDraft=True).get_json()["document"]

    response = client.put(f'/documents/{draft["id"]}', headers=headers, json={
        "title": "Updated title", "fields": FIELDS
    })
    assert response.status_code == 200
    assert response.get_json()["document"]["title"] == "Updated title"

    response = client.post(f'/documents/{draft["id"]}/submit', headers=headers)
    assert response.status_code == 200
    assert response.get_json()["new_status"] == "pending"

    # Pending documents are locked
    response = client.put(f'/documents/{draft["id"]}', headers=headers, json={"title": "Again"})
    assert response.status_code == 400
    response = client.post(f'/documents/{draft["id"]}/submit', headers=headers)
    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid status transition"


def test_only_owner_edits(client, faculty, make_user, category):
    _, headers = faculty
    _, other_headers = make_user("faculty", department="Computer")
    draft = create(client, headers, category, asDraft=True).get_json()["document"]

    response = client.put(f'/documents/{draft["id"]}', headers=other_headers, json={"title": "Mine now"})
    assert response.status_code == 403


def test_hod_review_approve(app, client, faculty, hod, category, mails):
    user, headers = faculty
    _, hod_headers = hod
    document = submitted(client, headers, category)

    # Criteria change before approval is applied at approval time
    with app.app_context():
        db_users().update_one({"_id": user["_id"]}, {"$set": {"designation": "Professor"}})

    response = client.post(f'/documents/{document["id"]}/review', headers=hod_headers, json={"status": "approved"})
    assert response.status_code == 200
    reviewed = response.get_json()["document"]
    assert reviewed["status"] == "approved"
    assert reviewed["credits"] == 6
    assert reviewed["reviewedByName"] == "Ravi Kulkarni"
    assert reviewed["revisionComment"] is None
    assert mails[-1] == ("approved", (user["email"], "Asha Patil", "Deep Learning Survey"))

    # Approved is final
    response = client.post(f'/documents/{document["id"]}/review', headers=hod_headers, json={"status": "rejected"})
    assert response.status_code == 400


def test_review_default_comments(client, faculty, principal, category, mails):
    _, headers = faculty
    _, principal_headers = principal
    first = submitted(client, headers, category)
    second = submitted(client, headers, category)

    response = client.post(f'/documents/{first["id"]}/review', headers=principal_headers, json={"status": "revisable"})
    assert response.get_json()["document"]["revisionComment"] == "Please review and make necessary changes."
    assert mails[-1][0] == "revisable"

    response = client.post(f'/documents/{second["id"]}/review', headers=principal_headers, json={
        "status": "rejected", "revisionComment": "Out of scope"
    })
    assert response.get_json()["document"]["revisionComment"] == "Out of scope"
    assert mails[-1][0] == "rejected"
    assert mails[-1][1][1:] == ("Asha Patil", "Deep Learning Survey", "Out of scope")


def test_revisable_document_can_be_resubmitted(client, faculty, hod, category, mails):
    _, headers = faculty
    _, hod_headers = hod
    document = submitted(client, headers, category)
    client.post(f'/documents/{document["id"]}/review', headers=hod_headers, json={"status": "revisable"})

    response = client.put(f'/documents/{document["id"]}', headers=headers, json={
        "title": "Revised survey", "submit": True
    })
    assert response.status_code == 200
    assert response.get_json()["document"]["status"] == "pending"


def test_review_permissions(client, faculty, hod, make_user, category, mails):
    _, headers = faculty
    _, hod_headers = hod
    _, other_hod_headers = make_user("hod", department="Mechanical")
    document = submitted(client, headers, category)

    decision = {"status": "approved"}
    assert client.post(f'/documents/{document["id"]}/review', headers=headers, json=decision).status_code == 403
    assert client.post(f'/documents/{document["id"]}/review', headers=other_hod_headers, json=decision).status_code == 403
    assert client.post(f'/documents/{document["id"]}/review', headers=hod_headers, json={"status": "done"}).status_code == 400

    # Nobody reviews their own work
    own = submitted(client, hod_headers, category)
    assert client.post(f'/documents/{own["id"]}/review', headers=hod_headers, json=decision).status_code == 403


def test_review_of_draft_is_invalid(client, faculty, admin, category):
    _, headers = faculty
    _, admin_headers = admin
    draft = create(client, headers, category, asDraft=True).get_json()["document"]

    response = client.post(f'/documents/{draft["id"]}/review', headers=admin_headers, json={"status": "approved"})
    assert response.status_code == 400
    assert "pending" in response.get_json()["message"]


def test_review_after_concurrent_decision_is_invalid(app, client, faculty, principal, category, mails, monkeypatch):
    _, headers = faculty
    _, principal_headers = principal
    document = submitted(client, headers, category)
    original = documents_module.can_review

    def decided_elsewhere(reviewer, doc):
        # Another reviewer rejects the document between the read and the write
        db_documents().update_one({"_id": doc["_id"]}, {"$set": {"status": "rejected"}})
        return original(reviewer, doc)

    monkeypatch.setattr(documents_module, "can_review", decided_elsewhere)
    response = client.post(
        f'/documents/{document["id"]}/review', headers=principal_headers, json={"status": "approved"}
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid status transition"
    with app.app_context():
        stored = db_documents().find_one({"_id": document["id"]})
    assert stored["status"] == "rejected"
    assert stored.get("reviewedBy") is None
    assert [kind for kind, _ in mails] == ["submitted"]


def test_submit_after_concurrent_submit_is_invalid(app, client, faculty, hod, category, mails, monkeypatch):
    _, headers = faculty
    draft = create(client, headers, category, asDraft=True).get_json()["document"]
    original = documents_module._submission_problem

    def submitted_elsewhere(doc, cat):
        db_documents().update_one({"_id": doc["_id"]}, {"$set": {"status": "pending"}})
        return original(doc, cat)

    monkeypatch.setattr(documents_module, "_submission_problem", submitted_elsewhere)
    response = client.post(f'/documents/{draft["id"]}/submit', headers=headers)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid status transition"
    with app.app_context():
        stored = db_documents().find_one({"_id": draft["id"]})
    assert stored["status"] == "pending"
    assert stored.get("submittedAt") is None
    assert mails == []


def test_visibility_by_role(client, faculty, hod, principal, make_user, category, mails):
    _, headers = faculty
    _, hod_headers = hod
    _, principal_headers = principal
    _, outsider_headers = make_user("faculty", department="Civil")

    mine = submitted(client, headers, category)
    theirs = submitted(client, outsider_headers, category, title="Bridge design")

    own_list = client.get('/documents', headers=headers).get_json()
    assert [d["id"] for d in own_list] == [mine["id"]]

    hod_list = client.get('/documents', headers=hod_headers).get_json()
    assert [d["id"] for d in hod_list] == [mine["id"]]

    everything = client.get('/documents', headers=principal_headers).get_json()
    assert {d["id"] for d in everything} == {mine["id"], theirs["id"]}

    assert client.get(f'/documents/{theirs["id"]}', headers=headers).status_code == 403
    assert client.get(f'/documents/{theirs["id"]}', headers=hod_headers).status_code == 403
    assert client.get(f'/documents/{mine["id"]}', headers=hod_headers).get_json()["canReview"] is True
    assert client.get('/documents/unknown', headers=headers).status_code == 404


def test_list_filters_search_and_sort(client, faculty, principal, make_user, category, mails):
    _, headers = faculty
    _, principal_headers = principal
    _, civil_headers = make_user("faculty", name="Vikram Deshmukh", department="Civil")

    submitted(client, headers, category, title="Beta paper")
    create(client, headers, category, title="Alpha draft", asDraft=True)
    submitted(client, civil_headers, category, title="Gamma study")

    drafts = client.get('/documents?status=draft', headers=principal_headers).get_json()
    assert [d["title"] for d in drafts] == ["Alpha draft"]

    by_title = client.get('/documents?sort=title-asc', headers=principal_headers).get_json()
    assert [d["title"] for d in by_title] == ["Alpha draft", "Beta paper", "Gamma study"]

    by_name = client.get('/documents?q=vikram', headers=principal_headers).get_json()
    assert [d["title"] for d in by_name] == ["Gamma study"]

    by_department = client.get('/documents?q=comp&searchBy=department', headers=principal_headers).get_json()
    assert {d["title"] for d in by_department} == {"Alpha draft", "Beta paper"}

    assert client.get('/documents?status=archived', headers=principal_headers).status_code == 400
    assert client.get('/documents?sort=random', headers=principal_headers).status_code == 400


def test_delete_rules(app, client, faculty, admin, hod, category, mails):
    _, headers = faculty
    _, admin_headers = admin
    _, hod_headers = hod

    draft = create(client, headers, category, asDraft=True).get_json()["document"]
    pending = submitted(client, headers, category)

    assert client.delete(f'/documents/{pending["id"]}', headers=headers).status_code == 400
    assert client.delete(f'/documents/{draft["id"]}', headers=hod_headers).status_code == 403
    assert client.delete(f'/documents/{draft["id"]}', headers=headers).status_code == 200
    assert client.delete(f'/documents/{pending["id"]}', headers=admin_headers).status_code == 200

    with app.app_context():
        assert db_documents().count_documents({}) == 0


def _upload(client, headers, document_id, content, filename):
    return client.post(
        f'/documents/{document_id}/file',
        headers=headers,
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
    )


def test_upload_download_and_preview_pdf(client, faculty, hod, category):
    _, headers = faculty
    _, hod_headers = hod
    draft = create(client, headers, category, asDraft=True).get_json()["document"]
    content = b"%PDF-1.4 sample paper"

    response = _upload(client, headers, draft["id"], content, "paper.pdf")
    assert response.status_code == 200
    body = response.get_json()["document"]
    assert body["hasFile"] is True
    assert body["fileName"] == "paper.pdf"
    assert body["fileType"] == "application/pdf"

    response = client.get(f'/documents/{draft["id"]}/file', headers=headers)
    assert response.status_code == 200
    assert response.data == content
    assert "attachment" in response.headers["Content-Disposition"]

    response = client.get(f'/documents/{draft["id"]}/preview', headers=headers)
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.data == content

    # The department head can read attachments of the department
    assert client.get(f'/documents/{draft["id"]}/file', headers=hod_headers).status_code == 200


def test_upload_replaces_previous_file_and_preview_docx(client, faculty, category):
    _, headers = faculty
    draft = create(client, headers, category, asDraft=True).get_json()["document"]
    _upload(client, headers, draft["id"], b"%PDF-1.4 first", "first.pdf")

    word = Document()
    word.add_paragraph("Keynote at ICML")
    word.add_paragraph("")
    buffer = io.BytesIO()
    word.save(buffer)

    response = _upload(client, headers, draft["id"], buffer.getvalue(), "talk.docx")
    assert response.status_code == 200
    assert response.get_json()["document"]["fileName"] == "talk.docx"

    response = client.get(f'/documents/{draft["id"]}/preview', headers=headers)
    assert response.status_code == 200
    preview = response.get_json()
    assert preview["kind"] == "text"
    assert preview["paragraphs"] == ["Keynote at ICML"]


def test_upload_rejections(client, faculty, hod, category, mails):
    _, headers = faculty
    _, hod_headers = hod
    draft = create(client, headers, category, asDraft=True).get_json()["document"]

    assert _upload(client, headers, draft["id"], b"MZ", "virus.exe").status_code == 400
    assert _upload(client, headers, draft["id"], b"", "empty.pdf").status_code == 400
    assert _upload(client, hod_headers, draft["id"], b"%PDF", "x.pdf").status_code == 403

    response = _upload(client, headers, draft["id"], b"0" * (2 * 1024 * 1024), "huge.pdf")
    assert response.status_code == 413
    assert "File too large" in response.get_json()["error"]

    pending = submitted(client, headers, category)
    assert _upload(client, headers, pending["id"], b"%PDF", "late.pdf").status_code == 400


def test_preview_external_link(client, faculty, category, monkeypatch):
    _, headers = faculty
    word = Document()
    word.add_paragraph("Certificate of participation")
    buffer = io.BytesIO()
    word.save(buffer)

    calls = []

    def fake_fetch(url, max_bytes):
        calls.append((url, max_bytes))
        return buffer.getvalue(), "certificate.docx", "application/octet-stream"

    monkeypatch.setattr(documents_module, "fetch_remote_file", fake_fetch)

    document = create(
        client, headers, category, asDraft=True, fileUrl="https://files.example.org/certificate.docx"
    ).get_json()["document"]
    response = client.get(f'/documents/{document["id"]}/preview', headers=headers)

    assert response.status_code == 200
    assert response.get_json()["paragraphs"] == ["Certificate of participation"]
    assert calls == [("https://files.example.org/certificate.docx", 1024 * 1024)]


def test_preview_refuses_internal_link(client, faculty, category):
    _, headers = faculty
    document = create(
        client, headers, category, asDraft=True, fileUrl="http://127.0.0.1:5000/internal/report.pdf"
    ).get_json()["document"]

    response = client.get(f'/documents/{document["id"]}/preview', headers=headers)
    assert response.status_code == 422
    assert "public host" in response.get_json()["error"]


def test_preview_without_attachment(client, faculty, category):
    _, headers = faculty
    draft = create(client, headers, category, asDraft=True).get_json()["document"]
    assert client.get(f'/documents/{draft["id"]}/preview', headers=headers).status_code == 404


def test_credit_summary_access_and_cap(app, client, faculty, hod, principal, make_user, category):
    user, headers = faculty
    _, hod_headers = hod
    _, principal_headers = principal
    _, peer_headers = make_user("faculty", department="Computer")
    _, outsider_hod_headers = make_user("hod", department="Civil")

    with app.app_context():
        db_documents().insert_many([
            {"_id": f"d{i}", "userId": user["_id"], "category": category["_id"], "status": "approved", "credits": 5}
            for i in range(5)
        ] + [{"_id": "p1", "userId": user["_id"], "category": category["_id"], "status": "pending", "credits": 5}])

    url = f'/documents/user/{user["_id"]}/credits'
    response = client.get(url, headers=headers)
    assert response.status_code == 200
    summary = response.get_json()
    assert summary["totalCredits"] == 20
    assert summary["totalMaxCredits"] == 20
    assert summary["progress"] == 100
    assert summary["byCategory"] == {category["_id"]: 20}
    assert summary["categories"][0]["pending"] == 1

    assert client.get(url, headers=hod_headers).status_code == 200
    assert client.get(url, headers=principal_headers).status_code == 200
    assert client.get(url, headers=peer_headers).status_code == 403
    assert client.get(url, headers=outsider_hod_headers).status_code == 403
    assert client.get('/documents/user/unknown/credits', headers=principal_headers).status_code == 404

    assert client.get('/documents/credits', headers=headers).get_json()["totalCredits"] == 20


def test_review_queue(client, faculty, hod, category, mails):
    _, headers = faculty
    _, hod_headers = hod
    first = submitted(client, headers, category)
    second = submitted(client, headers, category)
    create(client, headers, category, asDraft=True)
    client.post(f'/documents/{second["id"]}/review', headers=hod_headers, json={"status": "approved"})

    response = client.get('/documents/review-queue', headers=hod_headers)
    assert response.status_code == 200
    queue = response.get_json()
    assert [d["id"] for d in queue["pending"]] == [first["id"]]
    assert [d["id"] for d in queue["approved"]] == [second["id"]]
    assert queue["counts"]["pending"] == 1
    assert queue["counts"]["approved"] == 1

    assert client.get('/documents/review-queue', headers=headers).status_code == 403
