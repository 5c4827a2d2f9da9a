import logging
from flask_socketio import SocketIO, join_room, leave_room, emit
from flask import request

logger = logging.getLogger(__name__)

socketio = SocketIO()


def campaign_room(campaign_id) -> str:
    return f"campaign:{campaign_id}"


def init_socketio(app, cors_origins="*", async_mode="eventlet"):
    socketio.init_app(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=async_mode,
        logger=False,
        engineio_logger=False,
    )

    @socketio.on("connect")
    def handle_connect():
        logger.debug(
            "socket connect origin=%s ua=%s",
            request.headers.get("Origin"),
            request.headers.get("User-Agent"),
        )
        emit("connected", {"ok": True})

    @socketio.on("disconnect")
    def handle_disconnect():
        logger.debug("socket disconnect")

    @socketio.on("join_campaign")
    def on_join(data):
        cid = (data or {}).get("campaign_id")
        if not cid:
            emit("error", {"error": "campaign_id required"})
            return
        room = campaign_room(cid)
        join_room(room)
        emit("joined", {"room": room})

    @socketio.on("leave_campaign")
    def on_leave(data):
        cid = (data or {}).get("campaign_id")
        if not cid:
            return
        room = campaign_room(cid)
        leave_room(room)
        emit("left", {"room": room})

    return socketio
