from flask import current_app
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from .. import db, cache
from ..academic_calendar import is_valid_academic_session, normalize_term
from ..models import Result, SubjectResult, Student, SchoolClass, Subject, utc_now
from .errors import (
    ValidationError,
    PublishedResultConfirmationRequiredError,
    ResultNotFoundError,
    PersistenceError,
)
from .scoring import compute_subject_result, aggregate_result, assign_positions, summarize_class


def _coerce_id(value, field, label):
    if isinstance(value, bool):
        raise ValidationError(field, f"{label} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{label} is required")


def validate_result_key(student_id, academic_year, term):
    """
    Normalizes a (student, academicYear, term) key.
    Returns: (student_id: int, academic_year: str, term: str)
    """
    student_id = _coerce_id(student_id, "student", "Student")
    if not is_valid_academic_session(academic_year):
        raise ValidationError("academicYear", "Academic year must look like 2024/2025")
    normalized_term = normalize_term(term)
    if not normalized_term:
        raise ValidationError("term", "Valid term is required")
    return student_id, academic_year.strip(), normalized_term


def validate_scope(class_id, academic_year, term):
    class_id = _coerce_id(class_id, "class", "Class")
    if not is_valid_academic_session(academic_year):
        raise ValidationError("academicYear", "Academic year must look like 2024/2025")
    normalized_term = normalize_term(term)
    if not normalized_term:
        raise ValidationError("term", "Valid term is required")
    return class_id, academic_year.strip(), normalized_term


def _summary_cache_keys(class_id, academic_year, term):
    return [
        f"class-summary:{class_id}:{y}:{t}"
        for y in (academic_year, "*")
        for t in (term, "*")
    ]


def _invalidate_summary(class_id, academic_year, term):
    cache.delete_many(*_summary_cache_keys(class_id, academic_year, term))


def build_subject_results(subject_entries):
    """
    Validates every entry and resolves its subject in the directory.
    Nothing is persisted; the first bad entry raises ValidationError
    carrying the entry index.
    """
    if not isinstance(subject_entries, (list, tuple)):
        raise ValidationError("subjects", "Subjects must be an array")

    built = []
    seen = set()
    for index, entry in enumerate(subject_entries):
        try:
            line = compute_subject_result(entry)
            subject = resolve_subject(line["subject"])
            if not subject:
                raise ValidationError("subject", f"Unknown subject {line['subject']}")
            if subject.subject_id in seen:
                raise ValidationError("subject", f"Subject {subject.code} entered more than once")
        except ValidationError as e:
            e.index = index
            raise
        seen.add(subject.subject_id)
        line["subject"] = subject.subject_id
        built.append(line)
    return built


def resolve_subject(identifier):
    """Looks a subject up by id (int or digit string) or by code, e.g. "MTH"."""
    if isinstance(identifier, bool):
        return None
    if isinstance(identifier, int):
        return db.session.get(Subject, identifier)
    if isinstance(identifier, str):
        value = identifier.strip()
        if value.isdigit():
            return db.session.get(Subject, int(value))
        return db.session.execute(
            select(Subject).filter(func.upper(Subject.code) == value.upper())
        ).scalars().first()
    return None


def get_existing_result(student_id, academic_year, term):
    student_id, academic_year, term = validate_result_key(student_id, academic_year, term)
    return db.session.execute(
        select(Result).filter_by(
            student_id_fk=student_id,
            academic_year=academic_year,
            term=term,
        )
    ).scalars().first()


def get_result(result_id):
    result = db.session.get(Result, result_id)
    if not result:
        raise ResultNotFoundError()
    return result


def upsert_result(key, subject_entries, remarks=None, confirm_overwrite_published=False,
                  entered_by=None, class_id=None, next_term_begins=None):
    """
    Creates or fully replaces the result for a (student, academicYear, term) key.

    The old subject lines are deleted and the new ones inserted in the same
    transaction as the parent update. A published result is only
    overwritten when confirm_overwrite_published is set. Class positions
    are recomputed after the write commits.
    """
    student_id, academic_year, term = validate_result_key(
        key.get("student"), key.get("academicYear"), key.get("term")
    )
    student = db.session.get(Student, student_id)
    if not student:
        raise ValidationError("student", f"Unknown student {student_id}")

    if class_id is None:
        class_id = student.class_id_fk
    class_id = _coerce_id(class_id, "class", "Class")
    if not db.session.get(SchoolClass, class_id):
        raise ValidationError("class", f"Unknown class {class_id}")

    if remarks is not None and not isinstance(remarks, str):
        raise ValidationError("remarks", "Remarks must be text")

    draft = aggregate_result(build_subject_results(subject_entries))

    previous_class_id = None
    created = False
    try:
        result = db.session.execute(
            select(Result).filter_by(
                student_id_fk=student_id,
                academic_year=academic_year,
                term=term,
            ).with_for_update()
        ).scalars().first()

        if result and result.published and not confirm_overwrite_published:
            raise PublishedResultConfirmationRequiredError(result.result_id)

        if not result:
            result = Result(
                student_id_fk=student_id,
                academic_year=academic_year,
                term=term,
            )
            db.session.add(result)
            created = True
        else:
            previous_class_id = result.class_id_fk
            result.subject_results.clear()
            db.session.flush()

        for line_no, line in enumerate(draft["subjects"], start=1):
            result.subject_results.append(SubjectResult(
                subject_id_fk=line["subject"],
                line_no=line_no,
                ca1=line["ca1"],
                ca2=line["ca2"],
                exam=line["exam"],
                total=line["total"],
                grade_letter=line["grade"],
            ))

        result.class_id_fk = class_id
        result.total_score = draft["total_score"]
        result.average_score = draft["average_score"]
        result.overall_grade = draft["overall_grade"]
        result.remarks = remarks
        result.next_term_begins = next_term_begins
        result.entered_by_fk = entered_by
        result.entered_at = utc_now()

        db.session.commit()
    except PublishedResultConfirmationRequiredError:
        db.session.rollback()
        current_app.logger.warning(
            "Refused overwrite of published result for student %s (%s, %s term)",
            student_id, academic_year, term,
        )
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to save result for student %s (%s, %s term)", student_id, academic_year, term
        )
        raise PersistenceError() from e

    current_app.logger.info(
        "%s result %s for student %s (%s, %s term): total=%s average=%s grade=%s",
        "Created" if created else "Replaced",
        result.result_id, student_id, academic_year, term,
        result.total_score, result.average_score, result.overall_grade,
    )

    recompute_class_ranking(class_id, academic_year, term)
    if previous_class_id is not None and previous_class_id != class_id:
        recompute_class_ranking(previous_class_id, academic_year, term)
    return result


def recompute_class_ranking(class_id, academic_year, term):
    """
    Rewrites position/total_students for every result in the scope, plus
    the per-subject positions. Idempotent.
    Returns the scope's results, best first.
    """
    class_id, academic_year, term = validate_scope(class_id, academic_year, term)
    try:
        results = db.session.execute(
            select(Result).filter_by(
                class_id_fk=class_id,
                academic_year=academic_year,
                term=term,
            ).order_by(Result.average_score.desc(), Result.student_id_fk)
        ).scalars().all()

        total_students = len(results)
        ranked = assign_positions(results, score=lambda r: r.average_score or 0)
        for result, position in ranked:
            result.position = position
            result.total_students = total_students

        # Subject positions
        by_subject = {}
        for result in results:
            for line in result.subject_results:
                by_subject.setdefault(line.subject_id_fk, []).append(line)
        for lines in by_subject.values():
            for line, position in assign_positions(lines, score=lambda l: l.total or 0):
                line.subject_position = position

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to recompute positions for class %s (%s, %s term)", class_id, academic_year, term
        )
        raise PersistenceError("Could not update class positions. Please try again.") from e

    _invalidate_summary(class_id, academic_year, term)
    current_app.logger.info(
        "Recomputed positions for class %s (%s, %s term): %s students",
        class_id, academic_year, term, total_students,
    )
    return [result for result, _ in ranked]


def publish_result(result_id):
    result = get_result(result_id)
    if result.published:
        return result
    try:
        result.published = True
        result.published_at = utc_now()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to publish result %s", result_id)
        raise PersistenceError("Could not publish the result. Please try again.") from e
    current_app.logger.info("Published result %s", result_id)
    return result


def publish_class_results(class_id, academic_year, term):
    """Publishes every unpublished result in the scope. Returns the count."""
    class_id, academic_year, term = validate_scope(class_id, academic_year, term)
    try:
        pending = db.session.execute(
            select(Result).filter_by(
                class_id_fk=class_id,
                academic_year=academic_year,
                term=term,
                published=False,
            )
        ).scalars().all()
        now = utc_now()
        for result in pending:
            result.published = True
            result.published_at = now
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to publish results for class %s (%s, %s term)", class_id, academic_year, term
        )
        raise PersistenceError("Could not publish the results. Please try again.") from e
    current_app.logger.info(
        "Published %s results for class %s (%s, %s term)", len(pending), class_id, academic_year, term
    )
    return len(pending)


def list_results(academic_year=None, term=None, class_id=None, published=None, limit=None):
    q = select(Result)
    if academic_year:
        q = q.filter(Result.academic_year == academic_year)
    if term:
        q = q.filter(Result.term == (normalize_term(term) or term))
    if class_id is not None:
        q = q.filter(Result.class_id_fk == class_id)
    if published is not None:
        q = q.filter(Result.published == published)
    q = q.order_by(Result.position.asc(), Result.average_score.desc())
    if limit:
        q = q.limit(limit)
    return db.session.execute(q).scalars().all()


def student_results(student_id, academic_year=None, term=None, published_only=True):
    q = select(Result).filter(Result.student_id_fk == student_id)
    if published_only:
        q = q.filter(Result.published.is_(True))
    if academic_year:
        q = q.filter(Result.academic_year == academic_year)
    if term:
        q = q.filter(Result.term == (normalize_term(term) or term))
    q = q.order_by(Result.academic_year.desc(), Result.term.desc())
    return db.session.execute(q).scalars().all()


def class_summary(class_id, academic_year=None, term=None):
    """
    Class performance figures (average, highest, lowest, pass rate).
    Cached per scope; any write to the scope clears it.
    """
    if term:
        term = normalize_term(term) or term
    key = f"class-summary:{class_id}:{academic_year or '*'}:{term or '*'}"
    summary = cache.get(key)
    if summary is not None:
        return summary

    q = select(Result.average_score).filter(Result.class_id_fk == class_id)
    if academic_year:
        q = q.filter(Result.academic_year == academic_year)
    if term:
        q = q.filter(Result.term == term)
    averages = db.session.execute(q).scalars().all()

    summary = summarize_class(averages, pass_mark=current_app.config.get("PASS_MARK", 40))
    cache.set(key, summary, timeout=current_app.config.get("SUMMARY_CACHE_TIMEOUT", 300))
    return summary
