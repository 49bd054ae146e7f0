from fastapi import APIRouter

from dodone.api.v1.board import router as board_router
from dodone.api.v1.ws import router as ws_router

v1_router = APIRouter()

v1_router.include_router(board_router)
v1_router.include_router(ws_router)
