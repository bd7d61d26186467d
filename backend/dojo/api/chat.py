from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from dojo.models.chat import ChatRequest
from dojo.services.turn_generator import stream_turn

router = APIRouter(tags=["Chat"])


@router.post("/chat")
async def chat(payload: ChatRequest) -> StreamingResponse:
    return StreamingResponse(stream_turn(payload), media_type="text/plain; charset=utf-8")
