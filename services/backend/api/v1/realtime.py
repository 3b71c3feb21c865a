"""Realtime channel - WebSocket presence registration and event delivery.

Client -> server messages:
    {"event": "join-resident", "data": {"username": "juan"}}
    {"event": "join-responder", "data": {"responderId": "...", "responderName": "Maria Cruz"}}

Each join is acknowledged with {"event": "joined", "data": {"role": ...}}.
Everything the server pushes afterwards is a domain event.
"""
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import structlog

from infrastructure.realtime import EventChannel, WebSocketConnection

router = APIRouter()
logger = structlog.get_logger()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    channel: EventChannel = websocket.app.state.channel
    presence = channel.presence

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    channel.connect(connection)

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break

            # Binary frames carry no text and count as malformed
            raw = frame.get("text")
            try:
                message = json.loads(raw) if raw is not None else None
            except ValueError:
                message = None
            if not isinstance(message, dict):
                logger.warning("realtime_message_invalid", connection_id=connection.id)
                continue

            event = message.get("event")
            data = message.get("data")

            if event == "join-resident":
                username = data.get("username") if isinstance(data, dict) else data
                if not username:
                    logger.warning("join_resident_missing_username", connection_id=connection.id)
                    continue
                presence.register_resident(str(username), connection)
                await connection.send({"event": "joined", "data": {"role": "resident", "identity": str(username)}})

            elif event == "join-responder":
                data = data if isinstance(data, dict) else {}
                responder_id = data.get("responderId")
                if not responder_id:
                    logger.warning("join_responder_missing_id", connection_id=connection.id)
                    continue
                name = data.get("responderName") or str(responder_id)
                presence.register_responder(str(responder_id), name, connection)
                await connection.send({"event": "joined", "data": {"role": "responder", "identity": str(responder_id)}})

            else:
                logger.warning("realtime_event_unknown", connection_id=connection.id, push_event=event)

    except WebSocketDisconnect:
        pass
    finally:
        channel.disconnect(connection)
