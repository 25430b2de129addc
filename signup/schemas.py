from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Type

from email_validator import SPECIAL_USE_DOMAIN_NAMES, EmailNotValidError, validate_email
from pydantic import BaseModel, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from signup.errors import FieldValidationError, UnknownFieldError
from signup.state import FIELD_NAMES, FormData, Step

NAME_MIN_LENGTH = 2
ADDRESS_MIN_LENGTH = 5
PASSWORD_MIN_LENGTH = 6

# stands in for reserved top-level labels so only the address syntax is judged
NEUTRAL_TLD = "example"


def _require_min_length(value: str, minimum: int, label: str) -> str:
    if len(value) < minimum:
        raise PydanticCustomError(
            "too_short",
            "{label} must be at least {minimum} characters",
            {"label": label, "minimum": minimum},
        )
    return value


def _with_neutral_tld(address: str) -> str:
    local, at, domain = address.rpartition("@")
    labels = domain.split(".")
    if at and labels[-1].lower() in SPECIAL_USE_DOMAIN_NAMES:
        labels[-1] = NEUTRAL_TLD
    return local + at + ".".join(labels)


class PersonalInfoSchema(BaseModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _require_min_length(v, NAME_MIN_LENGTH, "Name")

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        try:
            validate_email(_with_neutral_tld(v), check_deliverability=False)
        except EmailNotValidError:
            raise PydanticCustomError("invalid_email", "Invalid email address") from None
        return v


class AddressSchema(BaseModel):
    address: str

    @field_validator("address")
    @classmethod
    def address_valid(cls, v: str) -> str:
        return _require_min_length(v, ADDRESS_MIN_LENGTH, "Address")


class PasswordSchema(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def password_valid(cls, v: str) -> str:
        return _require_min_length(v, PASSWORD_MIN_LENGTH, "Password")


class CombinedSchema(PersonalInfoSchema, AddressSchema, PasswordSchema):
    """Every step's rules at once; the authority at submission time."""


STEP_SCHEMAS: List[Tuple[Step, Optional[Type[BaseModel]]]] = [
    (Step.PERSONAL_INFO, PersonalInfoSchema),
    (Step.ADDRESS_INFO, AddressSchema),
    (Step.PASSWORD_SETUP, PasswordSchema),
    (Step.CONFIRMATION, None),
]

FIELD_SCHEMAS: Dict[str, Type[BaseModel]] = {
    field: schema
    for _, schema in STEP_SCHEMAS
    if schema is not None
    for field in schema.model_fields
}


def schema_for_step(step: Step) -> Optional[Type[BaseModel]]:
    for candidate, schema in STEP_SCHEMAS:
        if candidate == step:
            return schema
    raise ValueError(f"No schema registered for step {step!r}")


def _payload(schema: Type[BaseModel], values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    return {field: values.get(field) or "" for field in schema.model_fields}


def _collect_errors(exc: ValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0])
        errors.setdefault(field, error["msg"])
    return errors


def validate_fields(values: Mapping[str, Optional[str]], fields: Iterable[str]) -> Dict[str, str]:
    """Validate only ``fields`` and return the failing ones mapped to their message.

    Each field is checked by the step schema that owns it; missing values count as "".
    """
    wanted = list(fields)
    for field in wanted:
        if field not in FIELD_SCHEMAS:
            raise UnknownFieldError(field)

    errors: Dict[str, str] = {}
    for schema in dict.fromkeys(FIELD_SCHEMAS[field] for field in wanted):
        try:
            schema.model_validate(_payload(schema, values))
        except ValidationError as exc:
            for field, message in _collect_errors(exc).items():
                if field in wanted:
                    errors[field] = message
    return errors


def validate_field(field: str, value: Optional[str]) -> Optional[str]:
    return validate_fields({field: value}, [field]).get(field)


def validate_step(step: Step, values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    schema = schema_for_step(step)
    if schema is None:
        return {}
    return validate_fields(values, schema.model_fields)


def validate_record(values: Mapping[str, Optional[str]]) -> Tuple[Optional[FormData], Dict[str, str]]:
    try:
        record = CombinedSchema.model_validate(_payload(CombinedSchema, values))
    except ValidationError as exc:
        return None, _collect_errors(exc)
    return FormData(**record.model_dump()), {}


def as_field_errors(errors: Mapping[str, str]) -> List[FieldValidationError]:
    return [FieldValidationError(field, errors[field]) for field in FIELD_NAMES if field in errors]
