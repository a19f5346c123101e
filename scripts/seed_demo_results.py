import argparse
import sys
import os
import random

# Add project root to path
sys.path.insert(0, os.getcwd())

from werkzeug.security import generate_password_hash

from sms_app import create_app, db
from sms_app.academic_calendar import current_academic_session
from sms_app.models import SchoolClass, Subject, Student, User
from sms_app.results import services
from sms_app.results.errors import PublishedResultConfirmationRequiredError

DEMO_SUBJECTS = [
    ("Mathematics", "MTH"),
    ("English Language", "ENG"),
    ("Basic Science", "BSC"),
    ("Social Studies", "SOS"),
    ("Civic Education", "CVE"),
]


def seed_demo_results(class_name="JSS1A", term="first", num_students=10, overwrite_published=False, app=None):
    app = app or create_app()
    with app.app_context():
        print("--- Seeding Demo Results ---")
        academic_year = current_academic_session(cutover_month=app.config["SESSION_CUTOVER_MONTH"])
        print(f"Target: {class_name} {term} term ({academic_year})")

        # 1. Exam officer account
        officer = User.query.filter_by(username="exam.officer").first()
        if not officer:
            officer = User(
                username="exam.officer",
                password_hash=generate_password_hash("exam.officer"),
                role="exam_officer",
                first_name="Exam",
                last_name="Officer",
            )
            db.session.add(officer)

        # 2. Class and subjects
        school_class = SchoolClass.query.filter_by(name=class_name).first()
        if not school_class:
            school_class = SchoolClass(name=class_name, level="JSS")
            db.session.add(school_class)

        for name, code in DEMO_SUBJECTS:
            if not Subject.query.filter_by(code=code).first():
                db.session.add(Subject(name=name, code=code))
        db.session.commit()

        # 3. Students
        students = Student.query.filter_by(class_id_fk=school_class.class_id).all()
        for i in range(len(students), num_students):
            s = Student(
                admission_number=f"{class_name}-{i + 1:03d}",
                first_name=f"Student{i + 1}",
                last_name=class_name,
                class_id_fk=school_class.class_id,
            )
            db.session.add(s)
            students.append(s)
        db.session.commit()
        print(f"Students in class: {len(students)}")

        # 4. Scores
        for s in students:
            entries = [
                {
                    "subject": code,
                    "ca1": random.randint(5, 20),
                    "ca2": random.randint(5, 20),
                    "exam": random.randint(15, 60),
                }
                for _, code in DEMO_SUBJECTS
            ]
            try:
                result = services.upsert_result(
                    {"student": s.student_id, "academicYear": academic_year, "term": term},
                    entries,
                    remarks="Demo data",
                    confirm_overwrite_published=overwrite_published,
                    entered_by=officer.user_id,
                    class_id=school_class.class_id,
                )
            except PublishedResultConfirmationRequiredError:
                print(f"  {s.admission_number}: published result kept (use --overwrite-published)")
                continue
            print(f"  {s.admission_number}: average {result.average_score} ({result.overall_grade})")

        ranked = services.recompute_class_ranking(school_class.class_id, academic_year, term)
        print("--- Class positions ---")
        for r in ranked:
            print(f"  {r.position:>3}  {r.student.admission_number}  {r.average_score}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed random demo results for one class.")
    parser.add_argument("--class-name", default="JSS1A")
    parser.add_argument("--term", default="first")
    parser.add_argument("--students", type=int, default=10)
    parser.add_argument("--overwrite-published", action="store_true",
                        help="Replace results that have already been published")
    args = parser.parse_args()
    seed_demo_results(args.class_name, args.term, args.students, args.overwrite_published)
