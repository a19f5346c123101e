from datetime import datetime, timezone
from . import db

def utc_now():
    return datetime.now(timezone.utc)

from flask_login import UserMixin

# ==========================================
# DIRECTORY MODELS (students, classes, subjects)
# ==========================================

class SchoolClass(db.Model):
    __tablename__ = "classes"
    class_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)  # e.g. JSS1A, SS2SCIENCE
    level = db.Column(db.String(32))
    capacity = db.Column(db.Integer, default=30)
    created_at = db.Column(db.DateTime, default=utc_now)

    students = db.relationship("Student", backref="school_class", lazy=True)


class Subject(db.Model):
    __tablename__ = "subjects"
    subject_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(20), nullable=False, unique=True)  # e.g. MTH, ENG
    description = db.Column(db.Text)


class Student(db.Model):
    __tablename__ = "students"
    student_id = db.Column(db.Integer, primary_key=True)
    admission_number = db.Column(db.String(32), nullable=False, unique=True)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class User(UserMixin, db.Model):
    __tablename__ = "users"
    user_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(128), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(32), default="teacher")  # admin, director, exam_officer, teacher, student, parent
    first_name = db.Column(db.String(64))
    last_name = db.Column(db.String(64))
    # Student and parent accounts are linked to the student whose results they may read
    student_id_fk = db.Column(db.Integer, db.ForeignKey("students.student_id"))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    def get_id(self):
        return str(self.user_id)


# ==========================================
# RESULTS
# ==========================================

class Result(db.Model):
    __tablename__ = "results"
    result_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("students.student_id"), nullable=False)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    academic_year = db.Column(db.String(16), nullable=False)  # e.g. 2024/2025
    term = db.Column(db.String(16), nullable=False)  # first, second, third
    total_score = db.Column(db.Float, default=0)
    average_score = db.Column(db.Float, default=0)
    overall_grade = db.Column(db.String(4))
    position = db.Column(db.Integer, default=0)
    total_students = db.Column(db.Integer, default=0)
    remarks = db.Column(db.Text)
    next_term_begins = db.Column(db.Date)
    entered_by_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    entered_at = db.Column(db.DateTime, default=utc_now)
    published = db.Column(db.Boolean, nullable=False, default=False)
    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, onupdate=utc_now)

    student = db.relationship("Student", lazy=True)
    school_class = db.relationship("SchoolClass", lazy=True)
    entered_by = db.relationship("User", lazy=True)
    subject_results = db.relationship(
        "SubjectResult",
        backref="result",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SubjectResult.line_no",
    )

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "academic_year", "term", name="uq_result_student_session_term"),
        db.Index("ix_results_class_scope", "class_id_fk", "academic_year", "term"),
    )


class SubjectResult(db.Model):
    __tablename__ = "subject_results"
    subject_result_id = db.Column(db.Integer, primary_key=True)
    result_id_fk = db.Column(db.Integer, db.ForeignKey("results.result_id", ondelete="CASCADE"), nullable=False)
    subject_id_fk = db.Column(db.Integer, db.ForeignKey("subjects.subject_id"), nullable=False)
    line_no = db.Column(db.Integer, nullable=False, default=1)  # submission order
    ca1 = db.Column(db.Float, nullable=False, default=0)
    ca2 = db.Column(db.Float, nullable=False, default=0)
    exam = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False, default=0)
    grade_letter = db.Column(db.String(4))
    # Rank of this total among the class for the same subject/session/term
    subject_position = db.Column(db.Integer)

    subject = db.relationship("Subject", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("result_id_fk", "subject_id_fk", name="uq_subject_result_line"),
    )
