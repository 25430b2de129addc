from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from signup.state import PASSWORD_MASK, Step, WizardSnapshot

TOTAL_STEPS = len(Step)

FIELD_LABELS = {
    "name": "Name",
    "email": "Email",
    "address": "Address",
    "password": "Password",
}


class ScreenField(BaseModel):
    name: str
    label: str
    value: str = ""
    input_type: Literal["text", "password"] = "text"
    error: Optional[str] = None


class Screen(BaseModel):
    title: str
    fields: List[ScreenField] = Field(default_factory=list)
    summary: List[str] = Field(default_factory=list)
    show_back: bool = False
    primary_action: Literal["Next", "Submit"] = "Next"
    submitted: bool = False

    def as_text(self) -> str:
        lines = [self.title]
        for field in self.fields:
            shown = PASSWORD_MASK if field.input_type == "password" and field.value else field.value
            lines.append(f"  {field.label}: {shown}")
            if field.error:
                lines.append(f"    ! {field.error}")
        lines.extend(f"  {line}" for line in self.summary)

        buttons = (["[Back]"] if self.show_back else []) + [f"[{self.primary_action}]"]
        lines.append("  " + " ".join(buttons))
        if self.submitted:
            lines.append("  Form Submitted Successfully!")
        return "\n".join(lines)


def render_screen(snapshot: WizardSnapshot) -> Screen:
    step = snapshot.step
    fields = [
        ScreenField(
            name=name,
            label=FIELD_LABELS[name],
            value=snapshot.draft.get(name, ""),
            input_type="password" if name == "password" else "text",
            error=snapshot.errors.get(name),
        )
        for name in step.fields
    ]

    summary: List[str] = []
    if step.is_last:
        masked = snapshot.data.masked()
        summary = [f"{FIELD_LABELS[name]}: {masked[name]}" for name in FIELD_LABELS]
        # combined check failures have no input to sit under on this screen
        summary.extend(f"! {message}" for message in snapshot.errors.values())

    return Screen(
        title=f"Step {int(step)} of {TOTAL_STEPS}: {step.title}",
        fields=fields,
        summary=summary,
        show_back=not step.is_first,
        primary_action="Submit" if step.is_last else "Next",
        submitted=snapshot.submitted,
    )
