from enum import IntEnum
from typing import Annotated, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

PASSWORD_MASK = "••••••••"


class Step(IntEnum):
    PERSONAL_INFO = 1
    ADDRESS_INFO = 2
    PASSWORD_SETUP = 3
    CONFIRMATION = 4

    @property
    def title(self) -> str:
        return STEP_TITLES[self]

    @property
    def fields(self) -> Tuple[str, ...]:
        return STEP_FIELDS[self]

    @property
    def is_first(self) -> bool:
        return self is Step.PERSONAL_INFO

    @property
    def is_last(self) -> bool:
        return self is Step.CONFIRMATION

    def next(self) -> "Step":
        return Step(min(self + 1, Step.CONFIRMATION))

    def previous(self) -> "Step":
        return Step(max(self - 1, Step.PERSONAL_INFO))


STEP_TITLES: Dict[Step, str] = {
    Step.PERSONAL_INFO: "Personal info",
    Step.ADDRESS_INFO: "Address",
    Step.PASSWORD_SETUP: "Password setup",
    Step.CONFIRMATION: "Confirm your details",
}

STEP_FIELDS: Dict[Step, Tuple[str, ...]] = {
    Step.PERSONAL_INFO: ("name", "email"),
    Step.ADDRESS_INFO: ("address",),
    Step.PASSWORD_SETUP: ("password",),
    Step.CONFIRMATION: (),
}


class FormData(BaseModel):
    name: str = Field(default="", description="User's full name")
    email: str = Field(default="", description="User email")
    address: str = Field(default="", description="Postal address")
    password: str = Field(default="", description="Account password", repr=False)

    def masked(self) -> Dict[str, str]:
        """Return the record with the password hidden, safe for display and logs."""
        data = self.model_dump()
        data["password"] = PASSWORD_MASK if self.password else ""
        return data


FIELD_NAMES: Tuple[str, ...] = tuple(FormData.model_fields)

Action = Literal["start", "edit", "touch", "advance", "retreat", "submit"]


def merge_draft(left: Optional[Dict[str, str]], right: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {**(left or {}), **(right or {})}


class WizardState(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    action: Action = Field(default="start", description="User action being processed")
    step: int = Field(default=int(Step.PERSONAL_INFO), ge=1, le=4)
    field: Optional[str] = Field(default=None, description="Field being touched")
    draft: Annotated[Dict[str, str], merge_draft] = Field(default_factory=dict)

    errors: Dict[str, str] = Field(default_factory=dict)
    record: Optional[Dict[str, str]] = Field(default=None, description="Record that passed the combined check")
    submitted: bool = False


class WizardSnapshot(BaseModel):
    action: Action
    previous_step: Step
    step: Step
    errors: Dict[str, str] = Field(default_factory=dict)
    draft: Dict[str, str] = Field(default_factory=dict)
    data: FormData = Field(default_factory=FormData)
    submitted: bool = False
