import os
import pytest

from sms_app import create_app, db, cache
from sms_app.models import User, SchoolClass, Subject, Student
from werkzeug.security import generate_password_hash


@pytest.fixture(scope="session")
def temp_db_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("db") / "test.db"
    uri_path = str(path).replace("\\", "/")
    os.environ["DATABASE_URL"] = f"sqlite:///{uri_path}"
    os.environ["RATELIMIT_ENABLED"] = "false"
    return path


@pytest.fixture(scope="session")
def app(temp_db_path):
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture(autouse=True)
def clean_db(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
        cache.clear()
    yield


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def school(app):
    """Two classes, three subjects, three students in JSS1A and one in JSS1B."""
    with app.app_context():
        jss1a = SchoolClass(name="JSS1A", level="JSS")
        jss1b = SchoolClass(name="JSS1B", level="JSS")
        db.session.add_all([jss1a, jss1b])
        subjects = [
            Subject(name="Mathematics", code="MTH"),
            Subject(name="English Language", code="ENG"),
            Subject(name="Basic Science", code="BSC"),
        ]
        db.session.add_all(subjects)
        db.session.flush()

        students = [
            Student(admission_number=f"ADM00{i}", first_name=f"Pupil{i}", last_name="Okafor", class_id_fk=jss1a.class_id)
            for i in range(1, 4)
        ]
        students.append(Student(admission_number="ADM004", first_name="Pupil4", last_name="Bello", class_id_fk=jss1b.class_id))
        db.session.add_all(students)
        db.session.commit()

        return {
            "class_a": jss1a.class_id,
            "class_b": jss1b.class_id,
            "subjects": {s.code: s.subject_id for s in subjects},
            "students": [s.student_id for s in students],
        }


@pytest.fixture()
def users(app, school):
    with app.app_context():
        accounts = [
            User(username="admin", role="admin"),
            User(username="officer", role="exam_officer"),
            User(username="teacher", role="teacher"),
            User(username="pupil1", role="student", student_id_fk=school["students"][0]),
            User(username="parent2", role="parent", student_id_fk=school["students"][1]),
        ]
        for u in accounts:
            u.password_hash = generate_password_hash("secret")
        db.session.add_all(accounts)
        db.session.commit()
        return {u.username: u.user_id for u in accounts}


@pytest.fixture()
def login(client, users):
    """Logs the test client in and returns headers carrying the CSRF token."""
    def _login(username, password="secret"):
        resp = client.post("/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return {"X-CSRF-Token": resp.get_json()["data"]["csrfToken"]}
    return _login
