from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

# import config from bucketlistt.config file
from bucketlistt.config import Config
from bucketlistt.errors import BucketlisttError
from bucketlistt.models import db
from bucketlistt.sessions import reset_session_cache
from bucketlistt.utils import add_cors_headers, logger


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize database
    db.init_app(app)

    from bucketlistt.routes.main import main_bp
    from bucketlistt.routes.auth import auth_bp
    from bucketlistt.routes.booking import booking_bp
    from bucketlistt.routes.admin import admin_bp
    from bucketlistt.routes.chat import chat_bp
    from bucketlistt.routes.misc import misc_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(misc_bp)

    app.before_request(reset_session_cache)
    app.after_request(add_cors_headers)

    @app.errorhandler(BucketlisttError)
    def handle_app_error(e):
        if e.status >= 500:
            logger.error(f"{e.code}: {e}")
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"success": False, "error": e.description, "code": e.name.lower().replace(" ", "_")}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception(f"Unhandled error: {e}")
        db.session.rollback()
        return jsonify({"success": False, "error": "Internal server error"}), 500

    # Create tables inside app context
    with app.app_context():
        db.create_all()

    return app
