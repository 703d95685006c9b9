from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel
from contextlib import asynccontextmanager
from datetime import date, time
from typing import Optional
import logging

from auth import AuthContext, SettingsSessionProvider
from models import Coordinates, Sport
from repo_events import EventFeed, EventRepo
from service_events import MapScreen
from settings import settings
from wizard import CreateEventWizard, Submitting

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


class NameIn(BaseModel):
    name: str


class SportIn(BaseModel):
    sport: Sport


class DescriptionIn(BaseModel):
    description: str = ""


class DateIn(BaseModel):
    value: date


class TimeIn(BaseModel):
    value: time


class CapacityIn(BaseModel):
    capacity: str


class LocationIn(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


def create_app(repo=None, feed=None, session_provider=None, tracking_delay=None, wizard_options=None) -> FastAPI:
    # Defaults are the Postgres-backed repo and feed.
    repo = repo or EventRepo()
    feed = feed or EventFeed()
    auth = AuthContext(session_provider or SettingsSessionProvider())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await auth.init()
        screen = MapScreen(repo, feed, tracking_delay=tracking_delay, wizard_options=wizard_options)
        await screen.mount()
        app.state.screen = screen
        try:
            yield
        finally:
            await screen.unmount()

    app = FastAPI(title="PickupMap Backend", lifespan=lifespan)
    app.state.auth = auth

    async def screen_dep(request: Request) -> MapScreen:
        if not request.app.state.auth.authorized:
            raise HTTPException(status_code=401, detail="Not signed in")
        return request.app.state.screen

    async def wizard_dep(screen: MapScreen = Depends(screen_dep)) -> CreateEventWizard:
        if screen.wizard is None:
            raise HTTPException(status_code=404, detail="No event is being created")
        return screen.wizard

    def edit(action):
        try:
            action()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))

    @app.get("/health")
    async def health():
        try:
            await repo.ping()
            return {"ok": True}
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"DB health check failed: {e}")

    @app.get("/events")
    async def events(screen: MapScreen = Depends(screen_dep)):
        return {
            "events": [e.model_dump(mode="json", by_alias=True) for e in screen.snapshot()],
            "tracking_enabled": screen.tracking_enabled,
        }

    @app.get("/markers")
    async def markers(sport: Optional[Sport] = Query(None), screen: MapScreen = Depends(screen_dep)):
        return {
            "markers": screen.markers(sport),
            "tracking_enabled": screen.tracking_enabled,
            "user_location": screen.user_location,
        }

    @app.post("/screen/focus")
    async def focus(screen: MapScreen = Depends(screen_dep)):
        task = screen.on_focus()
        refreshed = await task if task is not None else False
        return {"refreshed": refreshed, "count": len(screen.replica)}

    @app.post("/screen/blur")
    async def blur(screen: MapScreen = Depends(screen_dep)):
        screen.on_blur()
        return {"focused": False}

    @app.post("/map/location")
    async def location(body: LocationIn, screen: MapScreen = Depends(screen_dep)):
        coords = None
        if body.latitude is not None and body.longitude is not None:
            coords = Coordinates(latitude=body.latitude, longitude=body.longitude)
        return screen.set_user_location(coords)

    @app.post("/map/tap")
    async def tap(body: Coordinates, screen: MapScreen = Depends(screen_dep)):
        edit(lambda: screen.tap(body))
        return {"pending": screen.pending_location, "prompt": "Create an event at this location?"}

    @app.delete("/map/pending")
    async def dismiss_pending(screen: MapScreen = Depends(screen_dep)):
        screen.dismiss_pending()
        return {"pending": None}

    @app.post("/map/pending/confirm")
    async def confirm_pending(screen: MapScreen = Depends(screen_dep)):
        edit(screen.confirm_pending)
        return _wizard_view(screen.wizard)

    @app.get("/wizard")
    async def wizard_state(wizard: CreateEventWizard = Depends(wizard_dep)):
        return _wizard_view(wizard)

    @app.post("/wizard/name")
    async def wizard_name(body: NameIn, wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(lambda: wizard.set_name(body.name))
        return _wizard_view(wizard)

    @app.post("/wizard/sport")
    async def wizard_sport(body: SportIn, wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(lambda: wizard.choose_sport(body.sport))
        return _wizard_view(wizard)

    @app.post("/wizard/description")
    async def wizard_description(body: DescriptionIn, wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(lambda: wizard.set_description(body.description))
        return _wizard_view(wizard)

    @app.post("/wizard/date")
    async def wizard_date(body: DateIn, wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(lambda: wizard.set_date(body.value))
        return _wizard_view(wizard)

    @app.post("/wizard/time")
    async def wizard_time(body: TimeIn, wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(lambda: wizard.set_time(body.value))
        return _wizard_view(wizard)

    @app.post("/wizard/capacity")
    async def wizard_capacity(body: CapacityIn, wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(lambda: wizard.set_capacity_text(body.capacity))
        return _wizard_view(wizard)

    @app.post("/wizard/capacity/increment")
    async def wizard_increment(wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(wizard.increment_capacity)
        return _wizard_view(wizard)

    @app.post("/wizard/capacity/decrement")
    async def wizard_decrement(wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(wizard.decrement_capacity)
        return _wizard_view(wizard)

    @app.post("/wizard/next")
    async def wizard_next(wizard: CreateEventWizard = Depends(wizard_dep)):
        try:
            await wizard.next_step()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))
        view = _wizard_view(wizard)
        if wizard.created_event is not None:
            view["created"] = wizard.created_event.model_dump(mode="json", by_alias=True)
        return view

    @app.post("/wizard/previous")
    async def wizard_previous(wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(wizard.previous_step)
        return _wizard_view(wizard)

    @app.post("/wizard/close")
    async def wizard_close(wizard: CreateEventWizard = Depends(wizard_dep)):
        edit(wizard.close)
        return _wizard_view(wizard)

    @app.get("/notices")
    async def notices(screen: MapScreen = Depends(screen_dep)):
        return {"notices": screen.notices.active()}

    @app.delete("/notices/{notice_id}")
    async def dismiss_notice(notice_id: int, screen: MapScreen = Depends(screen_dep)):
        if not screen.notices.dismiss(notice_id):
            raise HTTPException(status_code=404, detail="Unknown notice")
        return {"dismissed": notice_id}

    @app.post("/auth/sign-out")
    async def sign_out(request: Request):
        await request.app.state.auth.sign_out()
        return {"authorized": False}

    return app


def _wizard_view(wizard: CreateEventWizard) -> dict:
    draft = wizard.draft
    return {
        "open": wizard.is_open,
        "step": wizard.step_index,
        "state": type(wizard.state).__name__,
        "validation_error": wizard.validation_error,
        "submitting": isinstance(wizard.state, Submitting),
        "can_submit": wizard.can_submit,
        "coordinates": wizard.coordinates,
        "draft": {
            "name": draft.name,
            "sport": draft.sport,
            "description": draft.description,
            "date": draft.date.isoformat(),
            "time": draft.time.strftime("%H:%M"),
            "capacity": draft.capacity,
        },
    }


app = create_app()
