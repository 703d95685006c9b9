import asyncio
from datetime import date, datetime, time, timezone

import pytest
from pydantic import ValidationError

from models import Coordinates, Sport
from notices import NoticeBoard
from replica import ReplicaStore
from repo_events import StoreAuthorizationError, StoreError
from tests.fakes import NOW, FakeRepo
from wizard import (
    CapacityStep,
    Closed,
    CreateEventWizard,
    DescriptionStep,
    NameStep,
    ScheduleStep,
    SportStep,
    Step,
    Submitting,
    WizardStateError,
    WizardValidationError,
)

HERE = Coordinates(latitude=37.0, longitude=-122.0)


def _wizard(repo=None, **kwargs):
    closes = []
    created = []
    wizard = CreateEventWizard(
        repo or FakeRepo(),
        ReplicaStore(),
        NoticeBoard(),
        HERE,
        on_close=closes.append,
        on_event_created=created.append,
        clock=lambda: NOW,
        tz=timezone.utc,
        default_capacity=4,
        **kwargs,
    )
    return wizard, closes, created


async def _to_capacity(wizard, name="Pickup Hoops", sport=Sport.BASKETBALL):
    wizard.set_name(name)
    await wizard.next_step()
    wizard.choose_sport(sport)
    await wizard.next_step()
    await wizard.next_step()
    await wizard.next_step()
    assert isinstance(wizard.state, CapacityStep)


@pytest.mark.asyncio
async def test_empty_name_blocks_step_one():
    wizard, _, _ = _wizard()

    with pytest.raises(WizardValidationError, match="Please enter an event name"):
        await wizard.next_step()
    assert isinstance(wizard.state, NameStep)
    assert wizard.validation_error == "Please enter an event name"

    wizard.set_name("   ")
    with pytest.raises(WizardValidationError):
        await wizard.next_step()

    wizard.set_name("Pickup Hoops")
    assert wizard.validation_error is None
    await wizard.next_step()
    assert isinstance(wizard.state, SportStep)
    assert wizard.step_index == 2


@pytest.mark.asyncio
async def test_sport_is_required_and_must_be_known():
    wizard, _, _ = _wizard()
    wizard.set_name("Rally")
    await wizard.next_step()

    with pytest.raises(WizardValidationError, match="select a sport"):
        await wizard.next_step()
    with pytest.raises(WizardValidationError):
        wizard.choose_sport("Curling")

    wizard.choose_sport("Tennis")
    await wizard.next_step()
    assert isinstance(wizard.state, DescriptionStep)
    assert wizard.draft.sport is Sport.TENNIS


@pytest.mark.asyncio
async def test_optional_steps_never_block():
    wizard, _, _ = _wizard()
    await _to_capacity(wizard)

    assert wizard.draft.description == ""
    assert wizard.draft.capacity == "4"
    assert wizard.draft.date == NOW.date()
    assert wizard.draft.time == time(9, 30)


@pytest.mark.asyncio
async def test_previous_walks_back_and_keeps_fields():
    wizard, closes, _ = _wizard()
    await _to_capacity(wizard)

    wizard.previous_step()
    assert isinstance(wizard.state, ScheduleStep)
    wizard.previous_step()
    wizard.previous_step()
    assert isinstance(wizard.state, SportStep)
    assert wizard.draft.name == "Pickup Hoops"
    assert closes == []


@pytest.mark.asyncio
async def test_previous_from_step_one_cancels_and_resets_fields():
    wizard, closes, _ = _wizard()
    await _to_capacity(wizard)
    wizard.increment_capacity()
    for _ in range(4):
        wizard.previous_step()
    assert isinstance(wizard.state, NameStep)

    wizard.previous_step()

    assert closes == ["cancelled"]
    assert wizard.state == Closed("cancelled", wizard.draft)
    assert not wizard.is_open
    assert wizard.step_index == Step.NAME
    draft = wizard.draft
    assert (draft.name, draft.sport, draft.description, draft.capacity) == ("", None, "", "4")
    assert (draft.date, draft.time) == (NOW.date(), time(9, 30))


def test_close_cancels_from_any_input_step():
    wizard, closes, _ = _wizard()
    wizard.set_name("Something")

    wizard.close()

    assert closes == ["cancelled"]
    assert wizard.draft.name == ""
    with pytest.raises(WizardStateError):
        wizard.set_name("again")


@pytest.mark.asyncio
async def test_capacity_controls():
    wizard, _, _ = _wizard()
    await _to_capacity(wizard)

    wizard.increment_capacity()
    assert wizard.draft.capacity == "5"

    wizard.set_capacity_text("1")
    wizard.decrement_capacity()
    assert wizard.draft.capacity == "1"

    wizard.set_capacity_text("a12b3")
    assert wizard.draft.capacity == "12"
    wizard.set_capacity_text("")
    assert wizard.draft.capacity == "1"
    wizard.set_capacity_text("00")
    assert wizard.draft.capacity == "1"

    wizard.set_capacity_text("99")
    wizard.increment_capacity()
    assert wizard.draft.capacity == "100"


def test_fields_are_only_editable_on_their_own_step():
    wizard, _, _ = _wizard()

    with pytest.raises(WizardStateError):
        wizard.choose_sport(Sport.GOLF)
    with pytest.raises(WizardStateError):
        wizard.increment_capacity()
    with pytest.raises(WizardStateError):
        wizard.set_time(time(18, 0))


@pytest.mark.asyncio
async def test_schedule_rejects_dates_before_today_but_not_earlier_times():
    wizard, _, _ = _wizard()
    wizard.set_name("Early")
    await wizard.next_step()
    wizard.choose_sport(Sport.GOLF)
    await wizard.next_step()
    await wizard.next_step()

    with pytest.raises(WizardValidationError):
        wizard.set_date(date(2026, 10, 17))

    wizard.set_time(time(6, 15))
    composed = wizard.compose(wizard.draft)
    assert composed.starts_at == datetime(2026, 10, 18, 6, 15, tzinfo=timezone.utc)
    assert composed.starts_at < NOW


@pytest.mark.asyncio
async def test_successful_submission_appends_and_closes():
    repo = FakeRepo()
    repo.next_id = "abc"
    wizard, closes, created = _wizard(repo)
    await _to_capacity(wizard)
    wizard.increment_capacity()
    wizard.increment_capacity()

    state = await wizard.next_step()

    assert state == Closed("created", wizard.draft)
    payload = repo.inserted[0]
    assert payload.name == "Pickup Hoops"
    assert payload.sport is Sport.BASKETBALL
    assert payload.description == ""
    assert payload.max_players == 6
    assert (payload.latitude, payload.longitude) == (37.0, -122.0)
    assert "abc" in wizard.replica
    assert [e.id for e in created] == ["abc"]
    assert closes == ["created"]
    assert wizard.step_index == 1
    assert wizard.draft.name == ""
    success = wizard.notices.active()[-1]
    assert success.title == "Event Created!"
    assert success.message.startswith('New Basketball event "Pickup Hoops" has been created at Oct 18, 2026')


@pytest.mark.asyncio
async def test_failed_submission_returns_to_capacity_with_fields_kept():
    repo = FakeRepo()
    repo.insert_error = StoreError("Insert failed: timeout")
    wizard, closes, created = _wizard(repo)
    await _to_capacity(wizard)
    wizard.increment_capacity()

    state = await wizard.next_step()

    assert isinstance(state, CapacityStep)
    assert wizard.draft.name == "Pickup Hoops"
    assert wizard.draft.capacity == "5"
    assert created == [] and closes == []
    assert len(wizard.replica) == 0
    assert [n.title for n in wizard.notices.active()] == ["Error"]

    repo.insert_error = None
    state = await wizard.next_step()
    assert isinstance(state, Closed)
    assert len(repo.inserted) == 2
    assert len(created) == 1


@pytest.mark.asyncio
async def test_authorization_failure_gets_guidance():
    repo = FakeRepo()
    repo.insert_error = StoreAuthorizationError("Insert rejected by store policy")
    wizard, _, _ = _wizard(repo)
    await _to_capacity(wizard)

    await wizard.next_step()

    assert isinstance(wizard.state, CapacityStep)
    notice = wizard.notices.active()[0]
    assert notice.title == "Permission Error"
    assert "permission" in notice.message


@pytest.mark.asyncio
async def test_only_one_submission_in_flight():
    repo = FakeRepo()
    wizard, _, _ = _wizard(repo)
    await _to_capacity(wizard)
    repo.block()

    submit = asyncio.create_task(wizard.next_step())
    await asyncio.sleep(0)
    assert isinstance(wizard.state, Submitting)
    assert wizard.submitting and not wizard.can_submit

    with pytest.raises(WizardStateError):
        await wizard.next_step()
    with pytest.raises(WizardStateError):
        wizard.previous_step()
    with pytest.raises(WizardStateError):
        wizard.close()

    repo.release()
    await submit
    assert len(repo.inserted) == 1


def test_coordinates_are_fixed_for_the_session():
    wizard, _, _ = _wizard()

    with pytest.raises(ValidationError):
        wizard.coordinates.latitude = 0.0
    assert wizard.coordinates == HERE


@pytest.mark.asyncio
async def test_cancelled_submission_returns_to_capacity_and_can_close():
    repo = FakeRepo()
    wizard, closes, created = _wizard(repo)
    await _to_capacity(wizard)
    repo.block()

    submit = asyncio.create_task(wizard.next_step())
    await asyncio.sleep(0)
    assert isinstance(wizard.state, Submitting)

    submit.cancel()
    with pytest.raises(asyncio.CancelledError):
        await submit

    assert isinstance(wizard.state, CapacityStep)
    assert wizard.draft.name == "Pickup Hoops"
    assert created == []

    wizard.close()
    assert closes == ["cancelled"]
    assert not wizard.is_open
