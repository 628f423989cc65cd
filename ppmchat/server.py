import logging
import threading
from typing import Optional

from flask import Flask, jsonify, request

from ppmchat import config
from ppmchat.graph.graph import ChatHandler, create_handler

logger = logging.getLogger(__name__)


def _sweep_forever(handler: ChatHandler, interval: float, stop: threading.Event):
    while not stop.wait(interval):
        try:
            handler.store.sweep_expired()
        except Exception:
            logger.exception("Session sweep failed")


def start_sweeper(handler: ChatHandler, interval: float = config.SESSION_SWEEP_SECONDS) -> threading.Event:
    stop = threading.Event()
    t = threading.Thread(target=_sweep_forever, args=(handler, interval, stop), name="session-sweeper", daemon=True)
    t.start()
    return stop


def create_app(handler: Optional[ChatHandler] = None, start_background: bool = True) -> Flask:
    app = Flask(__name__)
    handler = handler or create_handler()
    app.config["CHAT_HANDLER"] = handler
    if start_background:
        app.config["SWEEPER_STOP"] = start_sweeper(handler)

    @app.post("/api/chat")
    def chat():
        body = request.get_json(silent=True) or {}
        message = (body.get("message") or "").strip()
        if not message:
            return jsonify({"error": "message is required"}), 400

        session_id = (body.get("sessionId") or "").strip() or "default"
        return jsonify(handler.handle_message(message, session_id))

    @app.post("/api/session/clear")
    def clear_session():
        body = request.get_json(silent=True) or {}
        session_id = (body.get("sessionId") or "").strip() or "default"
        handler.store.clear(session_id)
        return jsonify({"success": True, "sessionId": session_id})

    @app.get("/health")
    def health():
        caps = handler.services.tools.capabilities()
        return jsonify({
            "status": "ok" if caps.can_read else "degraded",
            "capabilities": caps.as_dict(),
            "model": config.OPENAI_MODEL,
        })

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_app().run(host="0.0.0.0", port=config.PORT, threaded=True)
