import logging
from typing import Any, Callable, Dict, Literal

from langgraph.graph import END, START, StateGraph

from signup.schemas import validate_field, validate_record, validate_step
from signup.state import FormData, Step, WizardState
from signup.store import FormDataStore

logger = logging.getLogger(__name__)

SubmitCallback = Callable[[FormData], None]


class WizardGraphFactory:
    def __init__(self, store: FormDataStore, on_submit: SubmitCallback):
        self.store = store
        self.on_submit = on_submit

    @staticmethod
    def route_action(state: WizardState) -> str:
        if state.action == "advance" and Step(state.step).is_last:
            return "submit"
        return state.action

    @staticmethod
    def start_node(state: WizardState) -> Dict[str, Any]:
        return {"step": int(Step.PERSONAL_INFO), "errors": {}, "submitted": False}

    @staticmethod
    def collect_node(state: WizardState) -> Dict[str, Any]:
        """
        No-op: the draft reducer already merged the edited values into state.
        """
        return {}

    @staticmethod
    def touch_node(state: WizardState) -> Dict[str, Any]:
        errors = dict(state.errors)
        message = validate_field(state.field, state.draft.get(state.field))
        if message is None:
            errors.pop(state.field, None)
        else:
            errors[state.field] = message
        return {"errors": errors}

    @staticmethod
    def validate_step_node(state: WizardState) -> Dict[str, Any]:
        step = Step(state.step)
        errors = validate_step(step, state.draft)
        if errors:
            logger.info("Step %s failed validation on fields: %s", step.name, sorted(errors))
        return {"errors": errors}

    @staticmethod
    def should_advance(state: WizardState) -> Literal["end", "commit"]:
        return "commit" if len(state.errors) == 0 else "end"

    def commit_node(self, state: WizardState) -> Dict[str, Any]:
        step = Step(state.step)
        self.store.merge({field: state.draft.get(field, "") for field in step.fields})
        logger.debug("Advancing from %s to %s", step.name, step.next().name)
        return {"step": int(step.next()), "errors": {}}

    @staticmethod
    def retreat_node(state: WizardState) -> Dict[str, Any]:
        step = Step(state.step)
        logger.debug("Retreating from %s to %s", step.name, step.previous().name)
        return {"step": int(step.previous()), "errors": {}}

    def validate_record_node(self, state: WizardState) -> Dict[str, Any]:
        record, errors = validate_record(self.store.read().model_dump())
        if errors:
            logger.info("Submission rejected, invalid fields: %s", sorted(errors))
        return {"errors": errors, "record": record.model_dump() if record is not None else None}

    @staticmethod
    def should_submit(state: WizardState) -> Literal["end", "complete"]:
        return "complete" if len(state.errors) == 0 and state.record is not None else "end"

    def submit_node(self, state: WizardState) -> Dict[str, Any]:
        record = FormData(**state.record)
        self.on_submit(record)
        logger.info("Form submitted: %s", record.masked())
        return {"submitted": True, "errors": {}}

    def build(self) -> StateGraph:
        g = StateGraph(WizardState)

        g.add_node("start", self.start_node)
        g.add_node("collect", self.collect_node)
        g.add_node("touch", self.touch_node)
        g.add_node("validate_step", self.validate_step_node)
        g.add_node("commit", self.commit_node)
        g.add_node("retreat", self.retreat_node)
        g.add_node("validate_record", self.validate_record_node)
        g.add_node("complete", self.submit_node)

        g.add_conditional_edges(
            START,
            self.route_action,
            {
                "start": "start",
                "edit": "collect",
                "touch": "touch",
                "advance": "validate_step",
                "retreat": "retreat",
                "submit": "validate_record",
            },
        )

        g.add_conditional_edges(
            "validate_step",
            self.should_advance,
            {"end": END, "commit": "commit"},
        )
        g.add_conditional_edges(
            "validate_record",
            self.should_submit,
            {"end": END, "complete": "complete"},
        )

        for node in ("start", "collect", "touch", "commit", "retreat", "complete"):
            g.add_edge(node, END)

        return g

    def compile(self, checkpointer: Any):
        return self.build().compile(checkpointer=checkpointer)
