import asyncio
import os

import pytest

from checkpoints.crypto import FieldCipher
from checkpoints.encrypted_memory_saver import EncryptedMemorySaver
from config.wizard import WizardConfig
from signup.controller import ENCRYPTED_CHANNELS, StepController
from signup.errors import AlreadySubmittedError, StepOrderError, UnknownFieldError
from signup.graph import WizardGraphFactory
from signup.state import FormData, Step, WizardState
from signup.store import FormDataStore

PERSONAL = {"name": "Al", "email": "a@b.com"}
ADDRESS = {"address": "123 Rd"}
PASSWORD = {"password": "abcdef"}


class Wizard:
    def __init__(self, initial=None):
        self.store = FormDataStore(initial)
        self.submissions = []
        self.controller = StepController(self.store, self.submissions.append, config=WizardConfig())

    def to_confirmation(self):
        assert self.controller.advance(**PERSONAL)
        assert self.controller.advance(**ADDRESS)
        assert self.controller.advance(**PASSWORD)
        assert self.controller.step == Step.CONFIRMATION


@pytest.fixture
def wizard():
    return Wizard()


def test_starts_at_personal_info(wizard):
    c = wizard.controller

    assert c.step == Step.PERSONAL_INFO
    assert c.is_first_step
    assert not c.is_last_step
    assert c.errors == {}
    assert not c.submitted


def test_drafts_seeded_from_store():
    wizard = Wizard(FormData(name="Pre", email="pre@b.com"))

    assert wizard.controller.draft["name"] == "Pre"
    assert wizard.controller.draft["email"] == "pre@b.com"


def test_advance_with_valid_personal_info(wizard):
    assert wizard.controller.advance(**PERSONAL) is True

    assert wizard.controller.step == Step.ADDRESS_INFO
    assert wizard.store.read() == FormData(**PERSONAL)
    assert wizard.controller.errors == {}


def test_advance_with_short_name_stays(wizard):
    assert wizard.controller.advance(name="A", email="a@b.com") is False

    assert wizard.controller.step == Step.PERSONAL_INFO
    assert wizard.controller.errors == {"name": "Name must be at least 2 characters"}
    assert wizard.store.read() == FormData()


def test_advance_merges_nothing_when_a_sibling_field_fails(wizard):
    assert wizard.controller.advance(name="Al", email="not-an-email") is False

    assert wizard.controller.errors == {"email": "Invalid email address"}
    assert wizard.store.read().name == ""


def test_advance_with_empty_step_reports_every_field(wizard):
    assert wizard.controller.advance() is False

    assert set(wizard.controller.errors) == {"name", "email"}


def test_address_step(wizard):
    c = wizard.controller
    c.advance(**PERSONAL)

    assert c.advance(address="Rd") is False
    assert c.errors == {"address": "Address must be at least 5 characters"}
    assert c.step == Step.ADDRESS_INFO

    assert c.advance(address="123 Rd") is True
    assert c.step == Step.PASSWORD_SETUP
    assert wizard.store.read().address == "123 Rd"


def test_password_step(wizard):
    c = wizard.controller
    c.advance(**PERSONAL)
    c.advance(**ADDRESS)

    assert c.advance(password="abcde") is False
    assert c.errors == {"password": "Password must be at least 6 characters"}

    assert c.advance(password="abcdef") is True
    assert c.step == Step.CONFIRMATION
    assert c.is_last_step


def test_only_current_step_fields_are_merged(wizard):
    c = wizard.controller
    c.edit(address="123 Rd")
    c.advance(**PERSONAL)

    assert wizard.store.read().address == ""


def test_retreat_is_noop_on_first_step(wizard):
    assert wizard.controller.retreat() == Step.PERSONAL_INFO
    assert wizard.store.read() == FormData()


def test_retreat_steps_back_one_and_keeps_values(wizard):
    c = wizard.controller
    c.advance(**PERSONAL)
    c.advance(**ADDRESS)

    assert c.retreat() == Step.ADDRESS_INFO
    assert c.retreat() == Step.PERSONAL_INFO
    assert wizard.store.read() == FormData(**PERSONAL, **ADDRESS)


def test_retreat_does_not_validate(wizard):
    c = wizard.controller
    c.advance(**PERSONAL)
    c.edit(address="x")

    assert c.retreat() == Step.PERSONAL_INFO
    assert c.errors == {}
    assert c.draft["address"] == "x"


def test_round_trip_navigation_keeps_entered_values(wizard):
    wizard.to_confirmation()
    c = wizard.controller

    for expected in (Step.PASSWORD_SETUP, Step.ADDRESS_INFO, Step.PERSONAL_INFO):
        assert c.retreat() == expected

    assert c.draft["name"] == "Al"
    assert c.draft["email"] == "a@b.com"
    assert wizard.store.read() == FormData(**PERSONAL, **ADDRESS, **PASSWORD)

    assert c.advance() and c.advance() and c.advance()
    assert c.step == Step.CONFIRMATION


def test_submit_invokes_callback_once(wizard):
    wizard.to_confirmation()

    assert wizard.controller.submit() is True

    assert wizard.submissions == [FormData(**PERSONAL, **ADDRESS, **PASSWORD)]
    assert wizard.controller.submitted
    assert wizard.controller.step == Step.CONFIRMATION


def test_advance_at_confirmation_submits(wizard):
    wizard.to_confirmation()

    assert wizard.controller.advance() is True
    assert len(wizard.submissions) == 1


def test_submit_before_confirmation_is_rejected(wizard):
    with pytest.raises(StepOrderError):
        wizard.controller.submit()
    assert wizard.submissions == []


def test_resubmission_is_rejected(wizard):
    wizard.to_confirmation()
    wizard.controller.submit()

    with pytest.raises(AlreadySubmittedError):
        wizard.controller.submit()
    with pytest.raises(AlreadySubmittedError):
        wizard.controller.retreat()
    with pytest.raises(AlreadySubmittedError):
        wizard.controller.advance()
    assert len(wizard.submissions) == 1


def test_combined_check_blocks_invalid_record(wizard):
    wizard.to_confirmation()
    wizard.store.merge({"name": "A"})

    assert wizard.controller.submit() is False

    assert wizard.submissions == []
    assert wizard.controller.errors == {"name": "Name must be at least 2 characters"}
    assert [e.field for e in wizard.controller.field_errors()] == ["name"]
    assert not wizard.controller.submitted


def test_touch_validates_single_field(wizard):
    c = wizard.controller
    c.edit(name="A", email="bad")

    assert c.touch("email") == "Invalid email address"
    assert c.errors == {"email": "Invalid email address"}

    c.edit(email="a@b.com")
    assert c.touch("email") is None
    assert c.errors == {}


def test_unknown_fields_are_rejected(wizard):
    with pytest.raises(UnknownFieldError):
        wizard.controller.edit(phone="9999999999")
    with pytest.raises(KeyError):
        wizard.controller.advance(pan="ABCDE1234F")
    with pytest.raises(UnknownFieldError):
        wizard.controller.touch("dob")


def test_listeners_receive_snapshots(wizard):
    seen = []
    unsubscribe = wizard.controller.subscribe(seen.append)

    wizard.controller.advance(**PERSONAL)
    unsubscribe()
    wizard.controller.retreat()

    assert len(seen) == 1
    snapshot = seen[0]
    assert snapshot.action == "advance"
    assert snapshot.previous_step == Step.PERSONAL_INFO
    assert snapshot.step == Step.ADDRESS_INFO
    assert snapshot.data == FormData(**PERSONAL)


def test_failing_listener_does_not_block_others(wizard):
    seen = []

    def broken(snapshot):
        raise RuntimeError("boom")

    wizard.controller.subscribe(broken)
    wizard.controller.subscribe(seen.append)
    wizard.controller.advance(**PERSONAL)

    assert [s.step for s in seen] == [Step.ADDRESS_INFO]


def test_submission_snapshot_signals_success(wizard):
    wizard.to_confirmation()
    seen = []
    wizard.controller.subscribe(seen.append)

    wizard.controller.submit()

    assert seen[-1].action == "submit"
    assert seen[-1].submitted


def test_async_flow(wizard):
    c = wizard.controller

    async def run():
        assert await c.aadvance(name="A", email="a@b.com") is False
        await c.aedit(name="Al")
        assert await c.atouch("name") is None
        assert await c.aadvance() is True
        assert await c.aretreat() == Step.PERSONAL_INFO
        assert await c.aadvance() is True
        assert await c.aadvance(**ADDRESS) is True
        assert await c.aadvance(**PASSWORD) is True
        return await c.asubmit()

    assert asyncio.run(run()) is True
    assert wizard.submissions == [FormData(**PERSONAL, **ADDRESS, **PASSWORD)]


def test_separate_controllers_do_not_share_state():
    a = Wizard()
    b = Wizard()
    a.controller.advance(**PERSONAL)

    assert a.controller.step == Step.ADDRESS_INFO
    assert b.controller.step == Step.PERSONAL_INFO


def test_callback_receives_the_record_that_passed_the_combined_check():
    store = FormDataStore(FormData(name="Stale"))
    submissions = []
    factory = WizardGraphFactory(store, submissions.append)
    validated = {**PERSONAL, **ADDRESS, **PASSWORD}

    update = factory.submit_node(WizardState(step=int(Step.CONFIRMATION), record=validated))

    assert submissions == [FormData(**validated)]
    assert update["submitted"] is True


def test_validate_record_node_carries_the_record():
    store = FormDataStore(FormData(**PERSONAL, **ADDRESS, **PASSWORD))
    factory = WizardGraphFactory(store, lambda data: None)

    update = factory.validate_record_node(WizardState(step=int(Step.CONFIRMATION)))
    assert update == {"errors": {}, "record": {**PERSONAL, **ADDRESS, **PASSWORD}}

    store.merge({"password": "abc"})
    update = factory.validate_record_node(WizardState(step=int(Step.CONFIRMATION)))
    assert update["record"] is None
    assert WizardGraphFactory.should_submit(WizardState(errors=update["errors"])) == "end"


class AsyncReadsOnlySaver(EncryptedMemorySaver):
    sync_reads_allowed = True

    def get_tuple(self, config):
        assert self.sync_reads_allowed, "synchronous checkpoint read from an async action"
        return super().get_tuple(config)

    async def aget_tuple(self, config):
        return super().get_tuple(config)


def test_async_actions_read_state_asynchronously():
    saver = AsyncReadsOnlySaver(FieldCipher(os.urandom(32)), encrypt_keys=ENCRYPTED_CHANNELS)
    submissions = []
    c = StepController(FormDataStore(), submissions.append, config=WizardConfig(), checkpointer=saver)
    saver.sync_reads_allowed = False

    async def run():
        assert await c.aadvance(**PERSONAL) is True
        await c.aedit(address="Rd")
        assert await c.atouch("address") == "Address must be at least 5 characters"
        assert await c.aretreat() == Step.PERSONAL_INFO
        assert await c.aadvance() is True
        assert await c.aadvance(**ADDRESS) is True
        assert await c.aadvance(**PASSWORD) is True
        assert await c.asubmit() is True
        with pytest.raises(AlreadySubmittedError):
            await c.asubmit()

    asyncio.run(run())
    assert submissions == [FormData(**PERSONAL, **ADDRESS, **PASSWORD)]
