from flask import Blueprint, jsonify

from bucketlistt import chat, sessions
from bucketlistt.errors import InvalidInput
from bucketlistt.utils import get_json_body

chat_bp = Blueprint('chat', __name__)


@chat_bp.route("/api/chat", methods=["POST"])
def ask():
    data = get_json_body()
    message = (data.get("message") or "").strip()
    if not message:
        raise InvalidInput("Message is required")
    context = chat.assemble_context(sessions.current_session())
    return jsonify(chat.ask_assistant(message, context))
