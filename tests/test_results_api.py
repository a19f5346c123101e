YEAR = "2024/2025"


def _payload(student_id, subjects, **extra):
    body = {"student": student_id, "academicYear": YEAR, "term": "first", "subjects": subjects}
    body.update(extra)
    return body


def _post_result(client, headers, student_id, subjects, **extra):
    return client.post("/api/results", json=_payload(student_id, subjects, **extra), headers=headers)


def test_health_and_sessions(client):
    assert client.get("/api/health").get_json()["data"]["status"] == "ok"

    resp = client.get("/api/sessions?date=2025-09-01")
    data = resp.get_json()["data"]
    assert data["current"] == "2025/2026"
    assert data["terms"] == ["first", "second", "third"]
    assert "2024/2025" in data["options"]

    assert client.get("/api/sessions?date=yesterday").status_code == 400


def test_login_rejects_bad_credentials(client, users):
    resp = client.post("/login", json={"username": "admin", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "invalid_credentials"

    resp = client.post("/login", json={"username": "admin"})
    assert resp.status_code == 400


def test_me_and_logout(client, login):
    headers = login("officer")
    me = client.get("/api/me").get_json()["data"]
    assert me["user"]["role"] == "exam_officer"

    assert client.post("/logout", headers=headers).status_code == 200
    assert client.get("/api/me").status_code == 401


def test_results_require_login(client, school):
    resp = client.get("/api/results")
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "unauthorized"


def test_teacher_cannot_enter_results(client, login, school):
    headers = login("teacher")
    resp = _post_result(client, headers, school["students"][0], [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}])
    assert resp.status_code == 403


def test_post_requires_csrf_token(client, login, school):
    login("officer")
    resp = _post_result(client, {}, school["students"][0], [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}])
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "csrf_failed"

    resp = _post_result(client, {"X-CSRF-Token": "forged"}, school["students"][0], [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}])
    assert resp.status_code == 400


def test_submit_result(client, login, school):
    headers = login("officer")
    resp = _post_result(
        client, headers, school["students"][0],
        [{"subject": "MTH", "ca1": 18, "ca2": 16, "exam": 60}],
        remarks="Keep it up",
        nextTermBegins="2025-01-06",
    )
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["totalScore"] == 94
    assert data["averageScore"] == 94
    assert data["overallGrade"] == "A"
    assert data["position"] == 1
    assert data["totalStudents"] == 1
    assert data["published"] is False
    assert data["nextTermBegins"] == "2025-01-06"
    assert data["class"]["name"] == "JSS1A"
    assert data["enteredBy"]["username"] == "officer"
    assert data["subjects"] == [{
        "subject": {"id": school["subjects"]["MTH"], "name": "Mathematics", "code": "MTH"},
        "ca1": 18, "ca2": 16, "exam": 60, "total": 94, "grade": "A", "position": 1,
    }]


def test_submit_out_of_band_score(client, login, school):
    headers = login("officer")
    resp = _post_result(client, headers, school["students"][0], [{"subject": "MTH", "ca1": 25, "ca2": 0, "exam": 0}])
    assert resp.status_code == 400
    error = resp.get_json()["error"]
    assert error["code"] == "validation_error"
    assert error["field"] == "ca1"
    assert error["index"] == 0


def test_submit_without_subjects(client, login, school):
    headers = login("officer")
    resp = _post_result(client, headers, school["students"][0], [])
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "empty_subject_list"


def test_submit_non_object_body(client, login, school):
    headers = login("officer")
    for url, send in (
        ("/api/results", client.post),
        ("/api/results/ranking/recompute", client.post),
        ("/api/results/publish/batch", client.put),
    ):
        resp = send(url, json=[1, 2], headers=headers)
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "validation_error"
        assert error["field"] == "body"

    assert client.post("/login", json=["admin", "secret"]).status_code == 400


def test_submit_non_text_remarks(client, login, school):
    headers = login("officer")
    resp = _post_result(
        client, headers, school["students"][0],
        [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}],
        remarks={"x": 1},
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "remarks"


def test_submit_bad_next_term_date(client, login, school):
    headers = login("officer")
    resp = _post_result(
        client, headers, school["students"][0],
        [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}],
        nextTermBegins="next monday",
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "nextTermBegins"


def test_published_overwrite_needs_confirmation(client, login, school):
    headers = login("officer")
    student = school["students"][0]
    created = _post_result(client, headers, student, [{"subject": "MTH", "ca1": 18, "ca2": 16, "exam": 60}]).get_json()["data"]
    assert client.put(f"/api/results/{created['id']}/publish", headers=headers).status_code == 200

    resp = _post_result(client, headers, student, [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}])
    assert resp.status_code == 409
    error = resp.get_json()["error"]
    assert error["code"] == "confirmation_required"
    assert error["resultId"] == created["id"]

    existing = client.get(f"/api/results/existing?student={student}&academicYear={YEAR}&term=first").get_json()["data"]
    assert existing["result"]["totalScore"] == 94

    resp = _post_result(
        client, headers, student,
        [{"subject": "MTH", "ca1": 1, "ca2": 1, "exam": 1}],
        confirmOverwritePublished=True,
    )
    assert resp.status_code == 200
    assert resp.get_json()["data"]["totalScore"] == 3
    assert resp.get_json()["data"]["published"] is True


def test_existing_result_prefills_form(client, login, school):
    headers = login("officer")
    student = school["students"][0]
    url = f"/api/results/existing?student={student}&academicYear={YEAR}&term=first"

    empty = client.get(url).get_json()["data"]
    assert empty == {"hasResults": False, "result": None, "subjects": []}

    _post_result(client, headers, student, [
        {"subject": "ENG", "ca1": 10, "ca2": 12, "exam": 40},
        {"subject": "MTH", "ca1": 15, "ca2": 15, "exam": 45},
    ], remarks="Good")
    data = client.get(url).get_json()["data"]
    assert data["hasResults"] is True
    assert data["result"]["remarks"] == "Good"
    assert "subjects" not in data["result"]
    assert [(s["subject"]["code"], s["total"]) for s in data["subjects"]] == [("ENG", 62), ("MTH", 75)]


def test_existing_result_bad_term(client, login, school):
    login("teacher")
    resp = client.get(f"/api/results/existing?student={school['students'][0]}&academicYear={YEAR}&term=summer")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "term"


def test_tied_students_share_position(client, login, school):
    headers = login("admin")
    a, b = school["students"][:2]
    _post_result(client, headers, a, [{"subject": "MTH", "ca1": 20, "ca2": 20, "exam": 40}])
    _post_result(client, headers, b, [{"subject": "MTH", "ca1": 20, "ca2": 20, "exam": 40}])

    resp = client.get(f"/api/results?class={school['class_a']}&academicYear={YEAR}&term=first")
    rows = resp.get_json()["data"]
    assert [(r["position"], r["totalStudents"]) for r in rows] == [(1, 2), (1, 2)]

    resp = client.post(
        "/api/results/ranking/recompute",
        json={"class": school["class_a"], "academicYear": YEAR, "term": "first"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert [r["position"] for r in resp.get_json()["data"]] == [1, 1]


def test_batch_publish_and_student_view(client, login, school):
    headers = login("officer")
    a, b = school["students"][:2]
    _post_result(client, headers, a, [{"subject": "MTH", "ca1": 20, "ca2": 20, "exam": 50}])
    _post_result(client, headers, b, [{"subject": "MTH", "ca1": 10, "ca2": 10, "exam": 20}])

    client.post("/logout", headers=headers)
    pupil_headers = login("pupil1")
    assert client.get(f"/api/results/student/{a}").get_json()["data"] == []
    client.post("/logout", headers=pupil_headers)

    headers = login("officer")
    resp = client.put(
        "/api/results/publish/batch",
        json={"class": school["class_a"], "academicYear": YEAR, "term": "first"},
        headers=headers,
    )
    assert resp.get_json()["data"]["published"] == 2
    client.post("/logout", headers=headers)

    login("pupil1")
    rows = client.get(f"/api/results/student/{a}?academicYear={YEAR}").get_json()["data"]
    assert len(rows) == 1
    assert rows[0]["position"] == 1
    assert rows[0]["subjects"][0]["total"] == 90

    assert client.get(f"/api/results/student/{b}").status_code == 403


def test_transcript_access(client, login, school):
    headers = login("officer")
    a, b = school["students"][:2]
    ra = _post_result(client, headers, a, [{"subject": "MTH", "ca1": 20, "ca2": 20, "exam": 50}]).get_json()["data"]
    rb = _post_result(client, headers, b, [{"subject": "MTH", "ca1": 10, "ca2": 10, "exam": 20}]).get_json()["data"]
    assert client.get(f"/api/results/{ra['id']}/transcript").status_code == 200
    assert client.get("/api/results/9999/transcript").status_code == 404
    client.post("/logout", headers=headers)

    # Parent linked to student b
    login("parent2")
    resp = client.get(f"/api/results/{rb['id']}/transcript")
    assert resp.status_code == 403
    assert resp.get_json()["error"]["message"] == "Result not yet published"
    assert client.get(f"/api/results/{ra['id']}/transcript").status_code == 403


def test_teacher_sees_draft_list_and_summary(client, login, school):
    headers = login("officer")
    for student, exam in zip(school["students"][:3], (50, 20, 5)):
        _post_result(client, headers, student, [{"subject": "MTH", "ca1": 10, "ca2": 10, "exam": exam}])
    client.post("/logout", headers=headers)

    login("teacher")
    rows = client.get("/api/results?published=false&limit=2").get_json()
    assert rows["meta"]["count"] == 2

    resp = client.get(f"/api/results/summary/class/{school['class_a']}?academicYear={YEAR}&term=first")
    summary = resp.get_json()["data"]
    assert summary["totalStudents"] == 3
    assert summary["highestScore"] == 70
    assert summary["lowestScore"] == 25
    assert summary["passCount"] == 2
    assert summary["failCount"] == 1
    assert summary["passRate"] == 66.67

    assert client.get(f"/api/results/summary/class/{school['class_a']}?term=fourth").status_code == 400


def test_student_cannot_list_results(client, login, school):
    login("pupil1")
    assert client.get("/api/results").status_code == 403


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False
