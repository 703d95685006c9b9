"""
Event-creation wizard.

A five-step finite-state machine that turns user input into an `EventIn`,
inserts it, and hands the stored row to the replica:

    NameStep -> SportStep -> DescriptionStep -> ScheduleStep -> CapacityStep
             -> Submitting -> Closed("created")      (insert succeeded)
                           -> CapacityStep           (insert failed, fields kept)

Going back from NameStep, or `close()` from any input step, resets every
field and ends in Closed("cancelled").

Each state is a frozen object holding an immutable `Draft`, and a field can
only be edited in the step that owns it. A `Submitting` state has no edit
operations at all, so the draft being sent cannot change underneath the
insert, and a second submission cannot start while one is in flight.

The wizard never picks a location. It is constructed with the map
coordinates the user tapped and keeps them for its whole lifetime.
"""

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone, tzinfo
from enum import IntEnum
from typing import ClassVar, Optional, Union
from zoneinfo import ZoneInfo

from models import Coordinates, Event, EventIn, Sport
from notices import NoticeBoard
from replica import ReplicaStore
from repo_events import EventRepo
from settings import settings

logger = logging.getLogger(__name__)

PERMISSION_GUIDANCE = (
    "The event store rejected this insert on permission grounds. "
    "Ask an administrator to grant insert access or add a policy for the events table."
)


class WizardValidationError(ValueError):
    """Input on the current step does not allow moving forward."""


class WizardStateError(RuntimeError):
    """The requested operation is not legal in the wizard's current state."""


class Step(IntEnum):
    NAME = 1
    SPORT = 2
    DESCRIPTION = 3
    SCHEDULE = 4
    CAPACITY = 5
    SUBMITTING = 6


@dataclass(frozen=True)
class Draft:
    """Field values collected so far. `capacity` is kept as entered text."""

    date: date
    time: time
    name: str = ""
    sport: Optional[Sport] = None
    description: str = ""
    capacity: str = "4"


@dataclass(frozen=True)
class NameStep:
    draft: Draft
    step: ClassVar[Step] = Step.NAME


@dataclass(frozen=True)
class SportStep:
    draft: Draft
    step: ClassVar[Step] = Step.SPORT


@dataclass(frozen=True)
class DescriptionStep:
    draft: Draft
    step: ClassVar[Step] = Step.DESCRIPTION


@dataclass(frozen=True)
class ScheduleStep:
    draft: Draft
    step: ClassVar[Step] = Step.SCHEDULE


@dataclass(frozen=True)
class CapacityStep:
    draft: Draft
    step: ClassVar[Step] = Step.CAPACITY


@dataclass(frozen=True)
class Submitting:
    draft: Draft
    step: ClassVar[Step] = Step.SUBMITTING


@dataclass(frozen=True)
class Closed:
    reason: str
    # Closing resets the form: the wizard is back at step 1 with defaults.
    draft: Draft = field(compare=False)
    step: ClassVar[Step] = Step.NAME


InputStep = Union[NameStep, SportStep, DescriptionStep, ScheduleStep, CapacityStep]
WizardState = Union[InputStep, Submitting, Closed]

INPUT_STEPS = (NameStep, SportStep, DescriptionStep, ScheduleStep, CapacityStep)


def format_date(d: date) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def format_time(t: time) -> str:
    return t.strftime("%I:%M %p")


def combine_datetime(d: date, t: time, tz: tzinfo) -> datetime:
    """Date from the date picker, hour and minute from the time picker, as UTC."""
    return datetime.combine(d, time(t.hour, t.minute), tzinfo=tz).astimezone(timezone.utc)


class CreateEventWizard:
    """One wizard session, bound to the tapped `coordinates`.

    Collaborators:
    - `repo.insert_event(EventIn) -> Event` stores the event.
    - `replica.append(Event)` makes it visible on the map immediately.
    - `on_event_created(Event)` fires once per successful submission.
    - `on_close(reason)` fires when the flow closes (created or cancelled).
    - `is_alive()` is False once the owning screen is gone; a late insert
      result is then ignored.
    """

    def __init__(
        self,
        repo: EventRepo,
        replica: ReplicaStore,
        notices: NoticeBoard,
        coordinates: Coordinates,
        on_close: Optional[Callable[[str], None]] = None,
        on_event_created: Optional[Callable[[Event], None]] = None,
        is_alive: Callable[[], bool] = lambda: True,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
        default_capacity: Optional[int] = None,
    ):
        self.repo = repo
        self.replica = replica
        self.notices = notices
        self._coordinates = coordinates
        self.on_close = on_close
        self.on_event_created = on_event_created
        self.is_alive = is_alive
        self.tz = tz or ZoneInfo(settings.event_timezone)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.default_capacity = str(max(1, default_capacity or settings.default_max_players))
        self.state: WizardState = NameStep(self._fresh_draft())
        self.validation_error: Optional[str] = None
        self.created_event: Optional[Event] = None

    # read side
    @property
    def coordinates(self) -> Coordinates:
        return self._coordinates

    @property
    def draft(self) -> Draft:
        return self.state.draft

    @property
    def step_index(self) -> int:
        return int(self.state.step)

    @property
    def is_open(self) -> bool:
        return not isinstance(self.state, Closed)

    @property
    def submitting(self) -> bool:
        return isinstance(self.state, Submitting)

    @property
    def can_submit(self) -> bool:
        return isinstance(self.state, CapacityStep)

    # field edits, each on its own step
    def set_name(self, name: str) -> None:
        self._edit(NameStep, name=name)

    def choose_sport(self, sport: Union[Sport, str]) -> None:
        try:
            chosen = Sport(sport)
        except ValueError:
            raise WizardValidationError(f"Unknown sport: {sport}") from None
        self._edit(SportStep, sport=chosen)

    def set_description(self, description: str) -> None:
        self._edit(DescriptionStep, description=description)

    def set_date(self, value: date) -> None:
        self._require(ScheduleStep)
        # Same floor as the date picker; the time picker has none.
        if value < self.clock().date():
            raise WizardValidationError("Event date cannot be before today")
        self._edit(ScheduleStep, date=value)

    def set_time(self, value: time) -> None:
        self._edit(ScheduleStep, time=value)

    def increment_capacity(self) -> None:
        self._edit(CapacityStep, capacity=str(int(self.draft.capacity) + 1))

    def decrement_capacity(self) -> None:
        self._edit(CapacityStep, capacity=str(max(1, int(self.draft.capacity) - 1)))

    def set_capacity_text(self, text: str) -> None:
        """Typed capacity: digits only, at most two of them, never below 1."""
        digits = re.sub(r"[^0-9]", "", text)[:2]
        if not digits or int(digits) < 1:
            digits = "1"
        self._edit(CapacityStep, capacity=str(int(digits)))

    # navigation
    async def next_step(self) -> WizardState:
        """Validate the current step and move forward.

        From `CapacityStep` this submits and returns the resulting state:
        `Closed("created")` on success, `CapacityStep` again on failure.
        """
        state = self._require(*INPUT_STEPS)
        self._validate(state)
        if isinstance(state, CapacityStep):
            return await self._submit(state.draft)
        self.state = INPUT_STEPS[INPUT_STEPS.index(type(state)) + 1](state.draft)
        return self.state

    def previous_step(self) -> WizardState:
        state = self._require(*INPUT_STEPS)
        self.validation_error = None
        if isinstance(state, NameStep):
            self._finish("cancelled")
        else:
            self.state = INPUT_STEPS[INPUT_STEPS.index(type(state)) - 1](state.draft)
        return self.state

    def close(self) -> None:
        self._require(*INPUT_STEPS)
        self._finish("cancelled")

    def compose(self, draft: Draft) -> EventIn:
        return EventIn(
            name=draft.name.strip(),
            sport=draft.sport,
            description=draft.description,
            datetime=combine_datetime(draft.date, draft.time, self.tz),
            max_players=int(draft.capacity),
            latitude=self._coordinates.latitude,
            longitude=self._coordinates.longitude,
        )

    # internals
    def _fresh_draft(self) -> Draft:
        now = self.clock()
        return Draft(date=now.date(), time=now.time().replace(second=0, microsecond=0),
                     capacity=self.default_capacity)

    def _require(self, *allowed):
        if not isinstance(self.state, allowed):
            if isinstance(self.state, Submitting):
                raise WizardStateError("An event is already being submitted")
            if isinstance(self.state, Closed):
                raise WizardStateError("The wizard is closed")
            raise WizardStateError(f"Not available on step {self.step_index}")
        return self.state

    def _edit(self, step_cls, **changes) -> None:
        state = self._require(step_cls)
        self.state = step_cls(replace(state.draft, **changes))
        self.validation_error = None

    def _validate(self, state: InputStep) -> None:
        message = None
        if isinstance(state, NameStep) and not state.draft.name.strip():
            message = "Please enter an event name"
        elif isinstance(state, SportStep) and state.draft.sport is None:
            message = "Please select a sport for your event"
        self.validation_error = message
        if message:
            raise WizardValidationError(message)

    async def _submit(self, draft: Draft) -> WizardState:
        payload = self.compose(draft)
        self.state = Submitting(draft)
        try:
            event = await self.repo.insert_event(payload)
        except asyncio.CancelledError:
            # The insert may or may not have landed; the feed will tell.
            self.state = CapacityStep(draft)
            raise
        except Exception as e:
            if not self.is_alive():
                return self.state
            self.state = CapacityStep(draft)
            logger.error("Error creating event", exc_info=True)
            if isinstance(e, PermissionError):
                self.notices.post("Permission Error", PERMISSION_GUIDANCE)
            else:
                self.notices.post("Error", "Failed to create event. Please try again later.")
            return self.state

        if not self.is_alive():
            return self.state
        self.created_event = event
        self.replica.append(event)
        if self.on_event_created is not None:
            self.on_event_created(event)
        logger.info("Event created with ID: %s", event.id)
        self.notices.post(
            "Event Created!",
            f'New {draft.sport.value} event "{payload.name}" has been created at '
            f"{format_date(draft.date)} {format_time(draft.time)}.",
            kind="success",
        )
        self._finish("created")
        return self.state

    def _finish(self, reason: str) -> None:
        self.state = Closed(reason, self._fresh_draft())
        self.validation_error = None
        if self.on_close is not None:
            self.on_close(reason)
