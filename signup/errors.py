class WizardError(Exception):
    pass


class FieldValidationError(WizardError):
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class UnknownFieldError(WizardError, KeyError):
    def __init__(self, field: str):
        super().__init__(f"Unknown form field: {field!r}")
        self.field = field

    def __str__(self) -> str:
        return self.args[0]


class StepOrderError(WizardError):
    pass


class AlreadySubmittedError(WizardError):
    pass
