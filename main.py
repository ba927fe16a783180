import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pymongo.errors import PyMongoError

from database import Database, serialize_document
from errors import ApiError, ConflictError, NotFoundError, StoreError, ValidationError
from schemas import (
    ITEM_FIELDS_REQUIRED,
    USER_FIELDS_REQUIRED,
    ItemCreate,
    UserCreate,
    validate_object_id,
    validate_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]
ITEMS_LIMIT = 100


def parse_allowed_origins(raw: Optional[str]) -> List[str]:
    """Split a comma-separated origin list; fall back to the local dev servers"""
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or list(DEFAULT_ORIGINS)


def get_database(request: Request) -> Database:
    return request.app.state.database


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_error_handlers(app: FastAPI):
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if isinstance(exc, StoreError):
            logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
            return error_response(500, "Internal server error")
        return error_response(exc.status_code, exc.message)

    # Unparseable or non-object bodies are client input errors, so they get a 400
    # rather than falling through to the generic 500 handler
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected body for %s %s: %s", request.method, request.url.path, exc.errors())
        return error_response(ValidationError.status_code, "Malformed JSON body")

    @app.exception_handler(PyMongoError)
    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
        return error_response(500, "Internal server error")


def create_app(database: Database, allowed_origins: Optional[List[str]] = None) -> FastAPI:
    app = FastAPI(title="Chef API")
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or list(DEFAULT_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/", response_class=PlainTextResponse)
    def read_root():
        return "Chef API is running"

    @app.get("/api/health")
    def health():
        """Liveness only; the database is not probed"""
        now = datetime.now(timezone.utc)
        return {"status": "ok", "timestamp": now.isoformat(timespec="milliseconds").replace("+00:00", "Z")}

    # ============================================================================
    # USER ENDPOINTS
    # ============================================================================

    @app.post("/api/users", status_code=201)
    def create_user(payload: Any = Body(None), db: Database = Depends(get_database)):
        user = validate_payload(UserCreate, payload, USER_FIELDS_REQUIRED)
        users = db.users()
        # Without the unique index (duplicates already stored) fall back to a lookup
        if not db.email_index and db.find_one(users, {"email": user.email}):
            raise ConflictError("User already exists")
        try:
            doc = db.create_document(users, user.model_dump())
        except ConflictError:
            raise ConflictError("User already exists")
        return serialize_document(doc)

    @app.get("/api/users")
    def list_users(db: Database = Depends(get_database)):
        return [serialize_document(d) for d in db.get_documents(db.users())]

    @app.get("/api/users/{user_id}")
    def get_user(user_id: str, db: Database = Depends(get_database)):
        validate_object_id(user_id, "user")
        doc = db.get_document(db.users(), user_id)
        if doc is None:
            raise NotFoundError("User not found")
        return serialize_document(doc)

    @app.delete("/api/users/{user_id}")
    def delete_user(user_id: str, db: Database = Depends(get_database)):
        validate_object_id(user_id, "user")
        if not db.delete_document(db.users(), user_id):
            raise NotFoundError("User not found")
        return {"message": "User deleted successfully", "deletedId": user_id}

    # ============================================================================
    # ITEM ENDPOINTS
    # ============================================================================

    @app.get("/api/items")
    def list_items(db: Database = Depends(get_database)):
        return [serialize_document(d) for d in db.get_documents(db.items(), limit=ITEMS_LIMIT)]

    @app.get("/api/items/{item_id}")
    def get_item(item_id: str, db: Database = Depends(get_database)):
        validate_object_id(item_id, "item")
        doc = db.get_document(db.items(), item_id)
        if doc is None:
            raise NotFoundError("Item not found")
        return serialize_document(doc)

    @app.delete("/api/items/{item_id}")
    def delete_item(item_id: str, db: Database = Depends(get_database)):
        validate_object_id(item_id, "item")
        if not db.delete_document(db.items(), item_id):
            raise NotFoundError("Item not found")
        return {"message": "Item deleted successfully", "deletedId": item_id}

    # Minimal validation; token verification belongs in front of this route
    @app.post("/api/items", status_code=201)
    def create_item(payload: Any = Body(None), db: Database = Depends(get_database)):
        item = validate_payload(ItemCreate, payload, ITEM_FIELDS_REQUIRED)
        doc = db.create_document(db.items(), item.model_dump())
        return serialize_document(doc)

    return app


# Exported for serverless platforms (e.g. Vercel), which import `app` directly
app = create_app(Database.from_env(), parse_allowed_origins(os.getenv("CLIENT_URL", "http://localhost:5173")))


def main():
    logging.basicConfig(level=logging.INFO)
    db = app.state.database
    port = int(os.getenv("PORT", 5000))

    try:
        db.connect()
        db.ping()
        db.ensure_indexes()
        logger.info("Connected to MongoDB and pinged admin database.")
    except StoreError:
        logger.exception("Failed to start server")
        sys.exit(1)

    import uvicorn
    logger.info("API server listening on port %s", port)
    try:
        uvicorn.run(app, host="0.0.0.0", port=port)
    finally:
        db.close()


if __name__ == "__main__" and os.getenv("VERCEL") != "1":
    main()
