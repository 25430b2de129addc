import logging
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from checkpoints.crypto import FieldCipher
from checkpoints.encrypted_memory_saver import EncryptedMemorySaver
from config.wizard import WizardConfig
from signup.errors import AlreadySubmittedError, FieldValidationError, StepOrderError, UnknownFieldError
from signup.graph import SubmitCallback, WizardGraphFactory
from signup.schemas import as_field_errors
from signup.state import FIELD_NAMES, Action, Step, WizardSnapshot
from signup.store import FormDataStore

logger = logging.getLogger(__name__)

Listener = Callable[[WizardSnapshot], None]

# Drafts and the validated record both carry the password.
ENCRYPTED_CHANNELS = ("draft", "record")


class StepController:
    """Drives the four-step signup wizard.

    Every user action is one invocation of the compiled wizard graph; step,
    drafts and errors are checkpointed under this controller's thread id.
    Validated answers are merged into the injected ``store``. Observers
    registered with :meth:`subscribe` receive a :class:`WizardSnapshot` after
    each action.

    After a successful submission the wizard is terminal and any further
    action raises :class:`AlreadySubmittedError`.
    """

    def __init__(
        self,
        store: FormDataStore,
        on_submit: SubmitCallback,
        *,
        config: Optional[WizardConfig] = None,
        checkpointer: Any = None,
        thread_id: Optional[str] = None,
    ):
        self.store = store
        self.config = config or WizardConfig.from_env()

        if checkpointer is None:
            cipher = FieldCipher.from_b64(self.config.encryption_key)
            checkpointer = EncryptedMemorySaver(cipher, encrypt_keys=ENCRYPTED_CHANNELS)

        self.thread_id = thread_id or f"{self.config.thread_prefix}-{uuid4().hex}"
        self._run_config = {"configurable": {"thread_id": self.thread_id}}
        self._graph = WizardGraphFactory(store, on_submit).compile(checkpointer=checkpointer)
        self._listeners: List[Listener] = []

        self._graph.invoke({"action": "start", "draft": store.read().model_dump()}, self._run_config)

    # -- read side -----------------------------------------------------------

    def _values(self) -> Dict[str, Any]:
        return self._graph.get_state(self._run_config).values

    @property
    def step(self) -> Step:
        return Step(self._values().get("step", Step.PERSONAL_INFO))

    @property
    def errors(self) -> Dict[str, str]:
        return dict(self._values().get("errors") or {})

    @property
    def draft(self) -> Dict[str, str]:
        return dict(self._values().get("draft") or {})

    @property
    def submitted(self) -> bool:
        return bool(self._values().get("submitted", False))

    @property
    def is_first_step(self) -> bool:
        return self.step.is_first

    @property
    def is_last_step(self) -> bool:
        return self.step.is_last

    def field_errors(self) -> List[FieldValidationError]:
        return as_field_errors(self.errors)

    def snapshot(self) -> WizardSnapshot:
        values = self._values()
        return self._build_snapshot(values.get("action", "start"), Step(values.get("step", 1)), values)

    def _build_snapshot(self, action: Action, previous: Step, values: Mapping[str, Any]) -> WizardSnapshot:
        return WizardSnapshot(
            action=action,
            previous_step=previous,
            step=Step(values.get("step", Step.PERSONAL_INFO)),
            errors=dict(values.get("errors") or {}),
            draft=dict(values.get("draft") or {}),
            data=self.store.read(),
            submitted=bool(values.get("submitted", False)),
        )

    # -- observers -----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: WizardSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Wizard listener %r failed", listener)

    # -- dispatch ------------------------------------------------------------

    async def _avalues(self) -> Dict[str, Any]:
        return (await self._graph.aget_state(self._run_config)).values

    @staticmethod
    def _check_open(values: Mapping[str, Any]) -> None:
        if values.get("submitted", False):
            raise AlreadySubmittedError("Form has already been submitted")

    @staticmethod
    def _check_fields(fields: Mapping[str, Any]) -> None:
        for field in fields:
            if field not in FIELD_NAMES:
                raise UnknownFieldError(field)

    @staticmethod
    def _check_submittable(values: Mapping[str, Any]) -> None:
        step = Step(values.get("step", Step.PERSONAL_INFO))
        if not step.is_last:
            raise StepOrderError(f"Cannot submit from step {step.name}; submit is only available at CONFIRMATION")

    def _dispatch(self, action: Action, current: Mapping[str, Any], **inputs: Any) -> WizardSnapshot:
        previous = Step(current.get("step", Step.PERSONAL_INFO))
        self._graph.invoke({"action": action, **inputs}, self._run_config)
        snapshot = self._build_snapshot(action, previous, self._values())
        self._notify(snapshot)
        return snapshot

    async def _adispatch(self, action: Action, current: Mapping[str, Any], **inputs: Any) -> WizardSnapshot:
        previous = Step(current.get("step", Step.PERSONAL_INFO))
        await self._graph.ainvoke({"action": action, **inputs}, self._run_config)
        snapshot = self._build_snapshot(action, previous, await self._avalues())
        self._notify(snapshot)
        return snapshot

    @staticmethod
    def _moved_forward(snapshot: WizardSnapshot) -> bool:
        return snapshot.submitted or snapshot.step > snapshot.previous_step

    # -- actions -------------------------------------------------------------

    def edit(self, **values: str) -> None:
        current = self._values()
        self._check_open(current)
        self._check_fields(values)
        self._dispatch("edit", current, draft=values)

    def touch(self, field: str) -> Optional[str]:
        """Validate a single field, as on blur, and return its error if any."""
        current = self._values()
        self._check_open(current)
        self._check_fields({field: None})
        return self._dispatch("touch", current, field=field).errors.get(field)

    def advance(self, **values: str) -> bool:
        """Validate the current step and move forward; submits at CONFIRMATION.

        Optional ``values`` are applied to the drafts first. Returns True when the
        wizard moved (or submitted), False when validation kept it in place.
        """
        current = self._values()
        self._check_open(current)
        self._check_fields(values)
        return self._moved_forward(self._dispatch("advance", current, draft=values))

    def retreat(self) -> Step:
        current = self._values()
        self._check_open(current)
        return self._dispatch("retreat", current).step

    def submit(self) -> bool:
        current = self._values()
        self._check_open(current)
        self._check_submittable(current)
        return self._dispatch("submit", current).submitted

    async def aedit(self, **values: str) -> None:
        current = await self._avalues()
        self._check_open(current)
        self._check_fields(values)
        await self._adispatch("edit", current, draft=values)

    async def atouch(self, field: str) -> Optional[str]:
        current = await self._avalues()
        self._check_open(current)
        self._check_fields({field: None})
        return (await self._adispatch("touch", current, field=field)).errors.get(field)

    async def aadvance(self, **values: str) -> bool:
        current = await self._avalues()
        self._check_open(current)
        self._check_fields(values)
        return self._moved_forward(await self._adispatch("advance", current, draft=values))

    async def aretreat(self) -> Step:
        current = await self._avalues()
        self._check_open(current)
        return (await self._adispatch("retreat", current)).step

    async def asubmit(self) -> bool:
        current = await self._avalues()
        self._check_open(current)
        self._check_submittable(current)
        return (await self._adispatch("submit", current)).submitted
