from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from questboard.backups import create_backup, list_backups, restore_backup
from questboard.config import Settings, setup_logging
from questboard.content import parse_templates
from questboard.errors import (
    AdminAuthError,
    InconsistentStateError,
    InvalidAssignmentError,
    InvalidGranularityError,
    InvalidUserError,
    QuestNotFoundError,
    TemplateError,
    UserExistsError,
    UserNotFoundError,
)
from questboard.repository import Repository
from questboard.service import QuestService
from questboard.storage import DocumentNotFoundError, DocumentStore, get_store
from questboard.users import UserService

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (QuestNotFoundError, 404),
    (UserNotFoundError, 404),
    (DocumentNotFoundError, 404),
    (UserExistsError, 409),
    (AdminAuthError, 401),
    (InvalidGranularityError, 400),
    (InvalidAssignmentError, 400),
    (InvalidUserError, 400),
    (TemplateError, 400),
    (InconsistentStateError, 500),
)


class ProgressRequest(BaseModel):
    progress: int = Field(..., ge=0, le=100)


class AuthRequest(BaseModel):
    password: str = ""


class PasswordRequest(BaseModel):
    password: str = Field(..., min_length=1)


class AssignmentRequest(BaseModel):
    questIds: List[str]
    action: str = "assign"


class TemplatesRequest(BaseModel):
    templates: List[dict]


class UserRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    preferences: Optional[dict] = None
    stats: Optional[dict] = None
    dailyQuests: Optional[List[str]] = None

    def changes(self) -> dict:
        return {k: v for k, v in self.model_dump().items() if v is not None}


def admin_password(request: Request) -> str:
    system = request.app.state.repo.load_system_config()
    return str(system.get("adminPassword") or request.app.state.settings.admin_password)


def require_admin(request: Request, x_admin_password: str = Header(default="")) -> None:
    if not x_admin_password or x_admin_password != admin_password(request):
        raise AdminAuthError("Admin password required")


def create_app(settings: Settings | None = None, store: DocumentStore | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    store = store or get_store(settings.store_uri)
    repo = Repository(store)

    app = FastAPI(title="Questboard")
    app.state.settings = settings
    app.state.store = store
    app.state.repo = repo
    app.state.quests = QuestService(repo, clock=settings.now)
    app.state.users = UserService(repo)

    for exc_type, status in ERROR_STATUS:
        app.add_exception_handler(exc_type, _error_handler(status))

    admin = [Depends(require_admin)]

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "today": settings.today().isoformat()}

    @app.get("/api/templates")
    def templates() -> dict:
        return {"templates": [t.to_dict() for t in repo.load_templates()]}

    @app.get("/api/users/{user_id}/quests")
    def user_quests(user_id: str) -> dict:
        return app.state.quests.load_quests(user_id)

    @app.post("/api/users/{user_id}/quests/{quest_id}/toggle")
    def toggle(user_id: str, quest_id: str) -> dict:
        return app.state.quests.toggle_quest(user_id, quest_id)

    @app.post("/api/users/{user_id}/quests/{quest_id}/progress")
    def progress(user_id: str, quest_id: str, body: ProgressRequest) -> dict:
        return app.state.quests.set_progress(user_id, quest_id, body.progress)

    @app.get("/api/users/{user_id}/profile")
    def profile(user_id: str) -> dict:
        return app.state.quests.profile(user_id)

    @app.get("/api/users/{user_id}/history/{day}")
    def history(user_id: str, day: str):
        try:
            parsed = date.fromisoformat(day)
        except ValueError:
            return JSONResponse({"error": f"Invalid date: {day}"}, status_code=400)
        snapshot = app.state.quests.day_snapshot(user_id, parsed)
        if snapshot is None:
            return JSONResponse({"error": f"No snapshot for {user_id} on {day}"}, status_code=404)
        return snapshot

    @app.post("/api/admin/auth")
    def admin_auth(body: AuthRequest, request: Request) -> dict:
        return {"isValid": bool(body.password) and body.password == admin_password(request)}

    @app.put("/api/admin/password", dependencies=admin)
    def change_password(body: PasswordRequest) -> dict:
        system = repo.load_system_config()
        system["adminPassword"] = body.password
        repo.save_system_config(system)
        logger.info("Admin password changed")
        return {"success": True}

    @app.get("/api/admin/users", dependencies=admin)
    def list_users() -> dict:
        return {"users": app.state.users.list_users()}

    @app.post("/api/admin/users", dependencies=admin, status_code=201)
    def create_user(body: UserRequest) -> dict:
        user = app.state.users.create_user(body.changes())
        return {"success": True, "userId": user.id, "userData": user.to_dict()}

    @app.get("/api/admin/users/{user_id}", dependencies=admin)
    def get_user(user_id: str) -> dict:
        return app.state.users.get_user(user_id).to_dict()

    @app.put("/api/admin/users/{user_id}", dependencies=admin)
    def modify_user(user_id: str, body: UserRequest) -> dict:
        user = app.state.users.modify_user(user_id, body.changes())
        return {"success": True, "userData": user.to_dict()}

    @app.delete("/api/admin/users/{user_id}", dependencies=admin)
    def delete_user(user_id: str) -> dict:
        removed = app.state.users.delete_user(user_id)
        return {"success": True, "userId": user_id, "snapshotsDeleted": removed}

    @app.post("/api/admin/users/{user_id}/assignments", dependencies=admin)
    def assign(user_id: str, body: AssignmentRequest) -> dict:
        user = app.state.users.assign_tasks(user_id, body.questIds, body.action)
        return {"success": True, "dailyQuests": user.daily_quests, "taskAssignments": user.task_assignments}

    @app.put("/api/admin/templates", dependencies=admin)
    def replace_templates(body: TemplatesRequest) -> dict:
        parsed = parse_templates(body.templates)
        repo.save_templates(parsed)
        logger.info("Template catalog replaced (%d templates)", len(parsed))
        return {"success": True, "count": len(parsed)}

    @app.get("/api/admin/backups", dependencies=admin)
    def backups() -> dict:
        return {"backups": list_backups(store)}

    @app.post("/api/admin/backups", dependencies=admin, status_code=201)
    def backup() -> dict:
        return create_backup(store)

    @app.post("/api/admin/backups/{name}/restore", dependencies=admin)
    def restore(name: str) -> dict:
        return {"success": True, "restored": restore_backup(store, name)}

    return app


def _error_handler(status: int):
    def handler(request: Request, exc: Exception) -> JSONResponse:
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=status)

    return handler


app = create_app()
