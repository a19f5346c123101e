import math

from .errors import ValidationError, EmptySubjectListError

# Component maxima for one subject (100-point scale)
MAX_CA1 = 20
MAX_CA2 = 20
MAX_EXAM = 60
MAX_SUBJECT_TOTAL = MAX_CA1 + MAX_CA2 + MAX_EXAM

SCORE_COMPONENTS = (
    ("ca1", "1st CA", MAX_CA1),
    ("ca2", "2nd CA", MAX_CA2),
    ("exam", "Exam", MAX_EXAM),
)

# Canonical table for subject totals and overall averages
SUBJECT_GRADE_BANDS = [
    {"min": 70, "grade": "A"},
    {"min": 60, "grade": "B"},
    {"min": 50, "grade": "C"},
    {"min": 40, "grade": "D"},
    {"min": 0, "grade": "F"},
]


def clean_number(value):
    """Drop a trailing .0 so whole scores serialize as integers."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _coerce_score(entry, field, label, maximum):
    value = entry.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, f"{label} is required")
    if isinstance(value, bool):
        raise ValidationError(field, f"{label} must be a number")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{label} must be a number")
    if math.isnan(score) or math.isinf(score):
        raise ValidationError(field, f"{label} must be a number")
    # Stored and summed at 2 dp
    score = round(score, 2)
    if score < 0 or score > maximum:
        raise ValidationError(field, f"{label} must be between 0 and {maximum}")
    return clean_number(score)


def normalize_scores(entry):
    """
    Validates one subject score entry and computes its total.
    Raises ValidationError naming the first offending field.
    """
    if not isinstance(entry, dict):
        raise ValidationError("subject", "Each subject entry must be an object")

    subject = entry.get("subject")
    if subject is None or (isinstance(subject, str) and not subject.strip()):
        raise ValidationError("subject", "Subject is required")

    scores = {"subject": subject}
    for field, label, maximum in SCORE_COMPONENTS:
        scores[field] = _coerce_score(entry, field, label, maximum)

    scores["total"] = clean_number(round(scores["ca1"] + scores["ca2"] + scores["exam"], 2))
    return scores


def classify_grade(percentage):
    """
    Maps a percentage in [0, 100] to a letter grade.
    SUBJECT_GRADE_BANDS uses inclusive lower bounds.
    """
    if isinstance(percentage, bool) or not isinstance(percentage, (int, float)):
        raise ValidationError("percentage", "Percentage must be a number")
    if math.isnan(percentage) or percentage < 0 or percentage > 100:
        raise ValidationError("percentage", "Percentage must be between 0 and 100")

    sorted_bands = sorted(SUBJECT_GRADE_BANDS, key=lambda b: b.get("min", 0), reverse=True)
    for band in sorted_bands:
        if percentage >= band.get("min", 0):
            return band["grade"]
    return sorted_bands[-1]["grade"]


def compute_subject_result(entry):
    scores = normalize_scores(entry)
    percentage = scores["total"] / MAX_SUBJECT_TOTAL * 100
    scores["grade"] = classify_grade(percentage)
    return scores


def aggregate_result(subject_results):
    """
    Rolls subject results up into the student's overall figures.
    Position and class size are left to the ranking step.
    """
    subject_results = list(subject_results or [])
    if not subject_results:
        raise EmptySubjectListError()

    total_score = round(sum(s["total"] for s in subject_results), 2)
    average_score = round(total_score / len(subject_results), 2)
    return {
        "subjects": subject_results,
        "subject_count": len(subject_results),
        "total_score": clean_number(total_score),
        "average_score": clean_number(average_score),
        "overall_grade": classify_grade(average_score),
    }


def assign_positions(rows, score):
    """
    Standard competition ranking ("1224"): rows with equal scores share a
    position and the next distinct score takes (rows strictly above) + 1.
    Returns [(row, position), ...] best first.
    """
    ordered = sorted(rows, key=score, reverse=True)
    ranked = []
    current_position = 1
    last_score = None
    for index, row in enumerate(ordered):
        value = score(row)
        if last_score is not None and value < last_score:
            current_position = index + 1
        ranked.append((row, current_position))
        last_score = value
    return ranked


def summarize_class(averages, pass_mark=40):
    """Class performance figures from the students' average scores."""
    averages = [a for a in averages if a is not None]
    total_students = len(averages)
    if not total_students:
        return {
            "totalStudents": 0,
            "averageScore": 0,
            "highestScore": 0,
            "lowestScore": 0,
            "passCount": 0,
            "failCount": 0,
            "passRate": 0,
        }

    pass_count = sum(1 for a in averages if a >= pass_mark)
    return {
        "totalStudents": total_students,
        "averageScore": clean_number(round(sum(averages) / total_students, 2)),
        "highestScore": clean_number(max(averages)),
        "lowestScore": clean_number(min(averages)),
        "passCount": pass_count,
        "failCount": total_students - pass_count,
        "passRate": clean_number(round(pass_count / total_students * 100, 2)),
    }
