from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from party_market.config import settings
from party_market.database import init_db
from party_market.game.errors import GameError
from party_market.logging_conf import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_db()
    from party_market.game.game_loop import auto_advance_loop
    if settings.AUTO_ADVANCE_SECONDS > 0:
        await auto_advance_loop.start()
    yield
    await auto_advance_loop.stop()


def create_app() -> FastAPI:
    app = FastAPI(title="Party Market", version="0.1.0", lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Routers
    from party_market.api.rooms import router as rooms_router
    from party_market.api.orders import router as orders_router
    from party_market.api.market import router as market_router

    app.include_router(rooms_router)
    app.include_router(orders_router)
    app.include_router(market_router)

    @app.get("/")
    async def root():
        return {"status": "ok", "game": "Party Market"}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        from party_market.ws.handler import websocket_handler
        await websocket_handler(websocket)

    return app


app = create_app()
