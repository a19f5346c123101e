class ResultsError(Exception):
    """Base class for errors raised by the results engine."""

    code = "results_error"
    status = 400
    default_message = "Result could not be processed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def details(self):
        return {}


class ValidationError(ResultsError):
    code = "validation_error"
    status = 400
    default_message = "Invalid input."

    def __init__(self, field, message=None, index=None):
        self.field = field
        self.index = index
        super().__init__(message)

    def details(self):
        details = {"field": self.field}
        if self.index is not None:
            details["index"] = self.index
        return details


class EmptySubjectListError(ResultsError):
    code = "empty_subject_list"
    status = 400
    default_message = "At least one subject is required."


class PublishedResultConfirmationRequiredError(ResultsError):
    code = "confirmation_required"
    status = 409
    default_message = (
        "These results have already been published. "
        "Confirm the overwrite to modify the student's official record."
    )

    def __init__(self, result_id=None, message=None):
        self.result_id = result_id
        super().__init__(message)

    def details(self):
        return {"resultId": self.result_id}


class ResultNotFoundError(ResultsError):
    code = "not_found"
    status = 404
    default_message = "Result not found."


class AccessDeniedError(ResultsError):
    code = "forbidden"
    status = 403
    default_message = "Access denied."


class PersistenceError(ResultsError):
    code = "persistence_error"
    status = 500
    default_message = "Could not save the result. Please try again."
