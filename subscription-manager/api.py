from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import json
import logging
import secrets

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware

import analyzer
from config import Settings, load_settings
from models import (
    ListIn,
    LoginRequest,
    PreferencesPatch,
    PriceChange,
    PriceChangeIn,
    SubscriptionIn,
    SubscriptionPatch,
)
from reminders import ReminderEvaluator, load_subscriptions
from scheduler import ReminderScheduler
from store import EntityStore, InvalidSort, RecordNotFound, UserService, build_mail_sender

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
log = logging.getLogger("api")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    store = EntityStore(settings.data_dir)
    users = UserService(settings.profile_file)
    evaluator = ReminderEvaluator(store, users, build_mail_sender(settings))
    reminder_scheduler = ReminderScheduler(evaluator, interval_minutes=settings.reminder_interval_minutes)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the reminder scheduler thread when the API server boots."""
        if settings.start_scheduler:
            reminder_scheduler.start()
        yield
        if settings.start_scheduler:
            reminder_scheduler.stop()

    app = FastAPI(title="SubTrack API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.users = users
    app.state.evaluator = evaluator
    app.state.scheduler = reminder_scheduler
    app.state.tokens = set()

    # ── Simple shared-password auth ───────────────────────────────────────────
    @app.post("/auth/login")
    def auth_login(req: LoginRequest):
        if req.password == settings.access_password:
            token = secrets.token_urlsafe(32)
            app.state.tokens.add(token)
            return {"status": "success", "token": token}
        return {"status": "error", "message": "Wrong password."}

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        # All /api/* routes require auth token
        if request.url.path.startswith("/api/"):
            token = request.headers.get("Authorization", "").replace("Bearer ", "")
            if token not in app.state.tokens:
                return Response(content='{"error":"unauthorized"}', status_code=401,
                                media_type="application/json")
        return await call_next(request)

    # Allow requests from the Vite frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174", "http://localhost:5175", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def fetch(entity: str, record_id: str) -> dict:
        try:
            return store.get(entity, record_id)
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc))

    # ── Subscriptions ─────────────────────────────────────────────────────────
    @app.get("/api/subscriptions")
    def list_subscriptions(sort: Optional[str] = None):
        try:
            return {"subscriptions": store.list("Subscription", sort=sort)}
        except InvalidSort as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @app.get("/api/subscriptions/{sub_id}")
    def get_subscription(sub_id: str):
        return fetch("Subscription", sub_id)

    @app.post("/api/subscriptions", status_code=201)
    def add_subscription(sub: SubscriptionIn, background_tasks: BackgroundTasks):
        if not sub.name.strip():
            raise HTTPException(status_code=422, detail="Service name is required.")
        data = sub.model_dump(mode="json")
        data["name"] = sub.name.strip()
        if sub.category is None:
            data["category"] = analyzer.categorize(data["name"]).value
        record = store.create("Subscription", data)
        log.info(f"Added subscription {record['name']} ({record['price']}/{record['billing_cycle']}).")
        background_tasks.add_task(reminder_scheduler.trigger)
        return record

    @app.put("/api/subscriptions/{sub_id}")
    def update_subscription(sub_id: str, patch: SubscriptionPatch, background_tasks: BackgroundTasks):
        fetch("Subscription", sub_id)
        record = store.update("Subscription", sub_id, patch.model_dump(mode="json", exclude_unset=True))
        background_tasks.add_task(reminder_scheduler.trigger)
        return record

    @app.delete("/api/subscriptions/{sub_id}")
    def delete_subscription(sub_id: str, background_tasks: BackgroundTasks):
        try:
            store.delete("Subscription", sub_id)
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        background_tasks.add_task(reminder_scheduler.trigger)
        return {"status": "success"}

    # ── Price history ─────────────────────────────────────────────────────────
    @app.get("/api/subscriptions/{sub_id}/price-history")
    def get_price_history(sub_id: str):
        fetch("Subscription", sub_id)
        changes = [
            PriceChange.model_validate(c)
            for c in store.list("PriceHistory")
            if c.get("subscription_id") == sub_id
        ]
        changes.sort(key=lambda c: c.change_date, reverse=True)
        return {
            "history": [c.model_dump(mode="json") for c in changes],
            "total_savings": analyzer.price_history_savings(changes),
        }

    @app.post("/api/subscriptions/{sub_id}/price-history", status_code=201)
    def add_price_change(sub_id: str, change: PriceChangeIn):
        fetch("Subscription", sub_id)
        return store.create("PriceHistory", {**change.model_dump(mode="json"), "subscription_id": sub_id})

    # ── Lists ─────────────────────────────────────────────────────────────────
    @app.get("/api/lists")
    def list_lists():
        return {"lists": store.list("List", sort="name")}

    @app.post("/api/lists", status_code=201)
    def add_list(data: ListIn):
        return store.create("List", data.model_dump())

    @app.put("/api/lists/{list_id}")
    def update_list(list_id: str, data: ListIn):
        fetch("List", list_id)
        return store.update("List", list_id, data.model_dump())

    @app.delete("/api/lists/{list_id}")
    def delete_list(list_id: str):
        try:
            store.delete("List", list_id)
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        detached = 0
        for sub in store.list("Subscription"):
            if sub.get("list_id") == list_id:
                store.update("Subscription", sub["id"], {"list_id": None})
                detached += 1
        return {"status": "success", "detached_subscriptions": detached}

    # ── Notifications ─────────────────────────────────────────────────────────
    @app.get("/api/notifications")
    def get_notifications():
        return {"notifications": [n.model_dump(mode="json") for n in evaluator.notifications()]}

    @app.get("/api/notifications/unread-count")
    def get_unread_count():
        return {"unread": evaluator.unread_count()}

    @app.post("/api/notifications/{notification_id}/read")
    def mark_notification_read(notification_id: str):
        updated = evaluator.mark_read(notification_id)
        return {"notifications": [n.model_dump(mode="json") for n in updated]}

    @app.delete("/api/notifications")
    def clear_notifications():
        evaluator.clear_all()
        return {"status": "success"}

    @app.get("/api/notifications/preferences")
    def get_preferences():
        return evaluator.preferences().model_dump()

    @app.put("/api/notifications/preferences")
    def update_preferences(patch: PreferencesPatch):
        return evaluator.update_preferences(patch).model_dump()

    @app.post("/api/reminders/run")
    def run_reminders():
        created = evaluator.run_pass()
        return {"created": [n.model_dump(mode="json") for n in created]}

    # ── Report / export ───────────────────────────────────────────────────────
    @app.get("/api/report")
    def get_report() -> Dict[str, Any]:
        return analyzer.run_analysis(load_subscriptions(store.list("Subscription")))

    @app.get("/api/export")
    def export_data():
        document = analyzer.build_export(load_subscriptions(store.list("Subscription")))
        filename = f"subscriptions-{datetime.now(timezone.utc):%Y-%m-%d}.json"
        return Response(
            content=json.dumps(document, indent=2),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/scheduler/status")
    def scheduler_status():
        return reminder_scheduler.status()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
