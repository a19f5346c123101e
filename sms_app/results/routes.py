from datetime import date

from flask import request, current_app
from flask_login import login_required, current_user

from . import results_bp
from .. import csrf_required
from ..api_utils import api_success, api_error
from ..decorators import role_required
from ..academic_calendar import normalize_term
from .errors import ResultsError, ValidationError, AccessDeniedError
from .scoring import clean_number
from . import services

STAFF_ROLES = ("admin", "director", "exam_officer", "teacher")
ENTRY_ROLES = ("admin", "exam_officer")
FULL_VIEW_ROLES = ("admin", "director", "exam_officer")
LINKED_ROLES = ("student", "parent")


@results_bp.errorhandler(ResultsError)
def handle_results_error(e):
    if e.status >= 500:
        return api_error(e.code, e.message, e.status)
    return api_error(e.code, e.message, e.status, e.details())


def _role():
    return (getattr(current_user, "role", "") or "").strip().lower()


def _isoformat(value):
    return value.isoformat() if value else None


def _subject_payload(line):
    subject = line.subject
    return {
        "subject": {
            "id": line.subject_id_fk,
            "name": subject.name if subject else None,
            "code": subject.code if subject else None,
        },
        "ca1": clean_number(line.ca1),
        "ca2": clean_number(line.ca2),
        "exam": clean_number(line.exam),
        "total": clean_number(line.total),
        "grade": line.grade_letter,
        "position": line.subject_position,
    }


def _result_payload(result, include_subjects=True):
    student = result.student
    school_class = result.school_class
    entered_by = result.entered_by
    payload = {
        "id": result.result_id,
        "student": {
            "id": result.student_id_fk,
            "admissionNumber": student.admission_number if student else None,
            "name": student.full_name if student else None,
        },
        "class": {
            "id": result.class_id_fk,
            "name": school_class.name if school_class else None,
        },
        "academicYear": result.academic_year,
        "term": result.term,
        "totalScore": clean_number(result.total_score),
        "averageScore": clean_number(result.average_score),
        "overallGrade": result.overall_grade,
        "position": result.position,
        "totalStudents": result.total_students,
        "remarks": result.remarks,
        "nextTermBegins": _isoformat(result.next_term_begins),
        "enteredBy": {
            "id": result.entered_by_fk,
            "username": entered_by.username if entered_by else None,
        },
        "enteredAt": _isoformat(result.entered_at),
        "published": bool(result.published),
        "publishedAt": _isoformat(result.published_at),
    }
    if include_subjects:
        payload["subjects"] = [_subject_payload(line) for line in result.subject_results]
    return payload


def _json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("body", "Request body must be a JSON object")
    return payload


def _parse_date(value, field):
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(field, f"{field} must be a date (YYYY-MM-DD)")


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes")


def _ensure_can_view_student(student_id):
    if _role() in LINKED_ROLES and getattr(current_user, "student_id_fk", None) != student_id:
        raise AccessDeniedError()


# --- RESULT ROUTES ---

@results_bp.route("", methods=["GET"])
@login_required
@role_required(*STAFF_ROLES)
def list_results():
    published = request.args.get("published")
    results = services.list_results(
        academic_year=request.args.get("academicYear"),
        term=request.args.get("term"),
        class_id=request.args.get("class", type=int),
        published=None if published is None else _parse_bool(published),
        limit=request.args.get("limit", type=int),
    )
    return api_success([_result_payload(r, include_subjects=False) for r in results], meta={"count": len(results)})


@results_bp.route("", methods=["POST"])
@login_required
@role_required(*ENTRY_ROLES)
@csrf_required
def save_result():
    """
    Create/replace the result for one student, session and term.
    Re-submitting replaces every subject line; published results need
    confirmOverwritePublished.
    """
    payload = _json_body()
    result = services.upsert_result(
        {
            "student": payload.get("student"),
            "academicYear": payload.get("academicYear"),
            "term": payload.get("term"),
        },
        payload.get("subjects"),
        remarks=payload.get("remarks") or None,
        confirm_overwrite_published=_parse_bool(payload.get("confirmOverwritePublished")),
        entered_by=current_user.user_id,
        class_id=payload.get("class"),
        next_term_begins=_parse_date(payload.get("nextTermBegins"), "nextTermBegins"),
    )
    return api_success(_result_payload(result))


@results_bp.route("/existing", methods=["GET"])
@login_required
@role_required(*STAFF_ROLES)
def existing_result():
    result = services.get_existing_result(
        request.args.get("student"),
        request.args.get("academicYear"),
        request.args.get("term"),
    )
    if not result:
        return api_success({"hasResults": False, "result": None, "subjects": []})
    body = _result_payload(result)
    return api_success({"hasResults": True, "result": body, "subjects": body.pop("subjects")})


@results_bp.route("/ranking/recompute", methods=["POST"])
@login_required
@role_required(*ENTRY_ROLES)
@csrf_required
def recompute_ranking():
    payload = _json_body()
    ranked = services.recompute_class_ranking(
        payload.get("class"), payload.get("academicYear"), payload.get("term")
    )
    return api_success([
        {
            "id": r.result_id,
            "student": r.student_id_fk,
            "averageScore": clean_number(r.average_score),
            "position": r.position,
            "totalStudents": r.total_students,
        }
        for r in ranked
    ])


@results_bp.route("/<int:result_id>/publish", methods=["PUT"])
@login_required
@role_required(*ENTRY_ROLES)
@csrf_required
def publish_result(result_id):
    result = services.publish_result(result_id)
    return api_success(_result_payload(result, include_subjects=False), meta={"message": "Result published successfully"})


@results_bp.route("/publish/batch", methods=["PUT"])
@login_required
@role_required(*ENTRY_ROLES)
@csrf_required
def publish_batch():
    payload = _json_body()
    count = services.publish_class_results(
        payload.get("class"), payload.get("academicYear"), payload.get("term")
    )
    return api_success({"published": count}, meta={"message": "All results published successfully"})


@results_bp.route("/student/<int:student_id>", methods=["GET"])
@login_required
def student_results(student_id):
    _ensure_can_view_student(student_id)
    results = services.student_results(
        student_id,
        academic_year=request.args.get("academicYear"),
        term=request.args.get("term"),
    )
    return api_success([_result_payload(r) for r in results], meta={"count": len(results)})


@results_bp.route("/<int:result_id>/transcript", methods=["GET"])
@login_required
def transcript(result_id):
    result = services.get_result(result_id)
    _ensure_can_view_student(result.student_id_fk)
    if not result.published and _role() not in FULL_VIEW_ROLES:
        raise AccessDeniedError("Result not yet published")
    return api_success(_result_payload(result))


@results_bp.route("/summary/class/<int:class_id>", methods=["GET"])
@login_required
@role_required(*STAFF_ROLES)
def class_summary(class_id):
    term = request.args.get("term")
    if term and not normalize_term(term):
        raise ValidationError("term", "Valid term is required")
    summary = services.class_summary(
        class_id,
        academic_year=request.args.get("academicYear"),
        term=term,
    )
    current_app.logger.debug("Class %s summary: %s", class_id, summary)
    return api_success(summary)
