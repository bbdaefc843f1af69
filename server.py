import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, StrictInt

from slipbox import settings
from slipbox.category_bootstrap import bootstrap_account
from slipbox.db_connection import DBConnection
from slipbox.errors import SlipboxError
from slipbox.item_service import ItemService

settings.configure_logging()
logger = logging.getLogger("slipbox_backend")

ERROR_STATUS = {
    "not_found": 404,
    "invalid_argument": 422,
    "conflict_on_constraint": 500,
    "transaction_failure": 503,
}


class SlipCreate(BaseModel):
    content: str
    category_id: str
    position: Optional[StrictInt] = Field(default=None, validation_alias=AliasChoices("position", "order"))


class SlipUpdate(BaseModel):
    content: Optional[str] = None
    category_id: Optional[str] = None
    order: Optional[StrictInt] = None


class TopicCreate(BaseModel):
    name: str
    description: Optional[str] = None
    position: Optional[StrictInt] = Field(default=None, validation_alias=AliasChoices("position", "order"))


class TopicUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    order: Optional[StrictInt] = None


class ReorderEntry(BaseModel):
    id: str
    order: StrictInt


class SlipReorder(BaseModel):
    slips: List[ReorderEntry]


class TopicReorder(BaseModel):
    topics: List[ReorderEntry]


class InsertAtPosition(BaseModel):
    type: str
    id: str
    position: StrictInt


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    # authentication happens upstream; we only need to know who is calling
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


def create_app(service: Optional[ItemService] = None, session_factory=None) -> FastAPI:
    if service is None:
        db = DBConnection()
        session_factory = db.build_db_session_factory()
        service = ItemService(session_factory)
    else:
        db = None
        session_factory = session_factory or service.SessionFactory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if db is not None:
            db.create_schema()
        logger.info("slipbox backend ready")
        yield

    app = FastAPI(lifespan=lifespan)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SlipboxError)
    async def slipbox_error_handler(request: Request, exc: SlipboxError):
        status = ERROR_STATUS.get(exc.kind, 500)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.kind} {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.kind} {exc.message}")
        return JSONResponse(status_code=status, content=exc.to_dict())

    # -----------------------
    # Account
    # -----------------------

    @app.post("/account/bootstrap")
    def post_bootstrap(user_id: str = Depends(current_user_id)):
        return bootstrap_account(session_factory, user_id)

    @app.get("/dashboard")
    def get_dashboard(user_id: str = Depends(current_user_id)):
        return service.dashboard(user_id)

    # -----------------------
    # Slips
    # -----------------------

    @app.get("/slips")
    def get_slips(category_id: Optional[str] = None, user_id: str = Depends(current_user_id)):
        return service.list_slips(user_id, category_id)

    @app.post("/slips", status_code=201)
    def post_slip(body: SlipCreate, user_id: str = Depends(current_user_id)):
        return service.create_slip(user_id, body.content, body.category_id, body.position)

    @app.patch("/slips/reorder")
    def patch_slips_reorder(body: SlipReorder, user_id: str = Depends(current_user_id)):
        return service.bulk_reorder_slips(user_id, [e.model_dump() for e in body.slips])

    @app.get("/slips/{slip_id}")
    def get_slip(slip_id: str, user_id: str = Depends(current_user_id)):
        return service.get_slip(user_id, slip_id)

    @app.patch("/slips/{slip_id}")
    def patch_slip(slip_id: str, body: SlipUpdate, user_id: str = Depends(current_user_id)):
        return service.update_slip(user_id, slip_id, body.model_dump(exclude_unset=True))

    @app.delete("/slips/{slip_id}", status_code=204)
    def delete_slip(slip_id: str, user_id: str = Depends(current_user_id)):
        service.delete_slip(user_id, slip_id)
        return Response(status_code=204)

    # -----------------------
    # Topics
    # -----------------------

    @app.get("/topics")
    def get_topics(user_id: str = Depends(current_user_id)):
        return service.list_topics(user_id)

    @app.post("/topics", status_code=201)
    def post_topic(body: TopicCreate, user_id: str = Depends(current_user_id)):
        return service.create_topic(user_id, body.name, body.description, body.position)

    @app.patch("/topics/reorder")
    def patch_topics_reorder(body: TopicReorder, user_id: str = Depends(current_user_id)):
        return service.bulk_reorder_topics(user_id, [e.model_dump() for e in body.topics])

    @app.get("/topics/{topic_id}")
    def get_topic(topic_id: str, user_id: str = Depends(current_user_id)):
        return service.get_topic(user_id, topic_id)

    @app.patch("/topics/{topic_id}")
    def patch_topic(topic_id: str, body: TopicUpdate, user_id: str = Depends(current_user_id)):
        return service.update_topic(user_id, topic_id, body.model_dump(exclude_unset=True))

    @app.delete("/topics/{topic_id}", status_code=204)
    def delete_topic(topic_id: str, user_id: str = Depends(current_user_id)):
        service.delete_topic(user_id, topic_id)
        return Response(status_code=204)

    # -----------------------
    # Unified main space
    # -----------------------

    @app.get("/main-space")
    def get_main_space(user_id: str = Depends(current_user_id)):
        return service.list_main_space(user_id)

    @app.post("/api/items/recalculate-order")
    def post_recalculate(user_id: str = Depends(current_user_id)):
        return service.recalculate_main_space(user_id)

    @app.post("/api/items/insert-at-position")
    def post_insert_at_position(body: InsertAtPosition, user_id: str = Depends(current_user_id)):
        return service.insert_at_position(user_id, body.type, body.id, body.position)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
