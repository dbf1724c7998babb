from pathlib import Path

from flask import Blueprint, Flask, Response, current_app, jsonify, request
from flask_cors import CORS
from flasgger import Swagger, swag_from
from werkzeug.exceptions import HTTPException

from registration_api import __version__
from registration_api.api.custom_decorators import ADMIN_KEY_HEADER, admin_required, log_request
from registration_api.csv_export import CSV_FILENAME, records_to_csv
from registration_api.submission_pipeline import SubmissionPipeline, iso_timestamp, utcnow
from registration_api.utils.config import Settings, load_settings
from registration_api.utils.logger import logger, setup_logger
from registration_api.utils.mongo_handler import MongoDBHandler, StoreError
from registration_api.utils.objects import (
    ABUSE_REJECTED,
    DUPLICATE,
    STORE_ERROR,
    VALIDATION,
    SubmissionResult,
)
from registration_api.utils.recaptcha import RecaptchaVerifier


PATH = Path(__file__).parent.absolute()

STATUS_CODES = {
    VALIDATION: 400,
    ABUSE_REJECTED: 400,
    DUPLICATE: 409,
    STORE_ERROR: 500,
}

template = {
    "swagger": "2.0",
    "info": {
        "title": "Registration API",
        "description": "Registration form intake with reCAPTCHA protection and CSV export.",
        "version": __version__,
    },
    "basePath": "/",
    "consumes": ["application/json"],
    "produces": ["application/json"],
}

bp = Blueprint("registration", __name__)


def _settings() -> Settings:
    return current_app.config["SETTINGS"]


def _store() -> MongoDBHandler:
    return current_app.extensions["mongo_handler"]


@bp.route("/", methods=["GET"])
@bp.route("/health", methods=["GET"])
@swag_from(f"{PATH}/docs/health.yml")
@log_request
def health():
    database = "connected" if _store().ping() else "unavailable"
    return jsonify({
        "status": "OK",
        "message": "Server is running",
        "database": database,
        "timestamp": iso_timestamp(utcnow()),
    }), 200


@bp.route("/submit", methods=["POST"])
@swag_from(f"{PATH}/docs/submit.yml")
@log_request
def submit():
    data = request.get_json(silent=True)
    result = current_app.extensions["submission_pipeline"].submit(data)

    if result.ok:
        return jsonify({
            "success": True,
            "id": result.id,
            "message": "Form submitted successfully",
        }), 200
    return failure_response(result)


def failure_response(result: SubmissionResult):
    body = {"success": False}

    if result.kind == DUPLICATE:
        body["error"] = f"Registration with this {result.detail.replace('_', ' ')} already exists"
        body["field"] = result.detail
    elif result.kind == STORE_ERROR:
        body["error"] = "Failed to save data"
        if _settings().is_development:
            body["details"] = result.detail
    else:
        body["error"] = result.detail
        if result.error_codes:
            body["details"] = list(result.error_codes)

    return jsonify(body), STATUS_CODES.get(result.kind, 500)


@bp.route("/to_csv", methods=["GET"])
@bp.route("/csv", methods=["GET"])
@swag_from(f"{PATH}/docs/to_csv.yml")
@log_request
@admin_required
def export_csv():
    try:
        records = _store().get_all_registrations()
    except StoreError as e:
        logger.error(f"Error exporting CSV: {e}")
        body = {"success": False, "error": "Failed to export CSV"}
        if _settings().is_development:
            body["details"] = str(e)
        return jsonify(body), 500

    logger.info(f"CSV export completed with {len(records)} records")
    return Response(
        records_to_csv(records),
        status=200,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={CSV_FILENAME}"},
    )


@bp.route("/close", methods=["GET"])
@swag_from(f"{PATH}/docs/close.yml")
@log_request
def close():
    _store().close()
    return jsonify({"message": "Server is shutting down! DB Connection Closed"}), 200


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            "error": "Not found",
            "path": request.path,
            "method": request.method,
        }), 404

    @app.errorhandler(Exception)
    def handle_exception(error):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code

        logger.exception(f"Unhandled error on {request.method} {request.path}")
        body = {"error": "Internal server error"}
        if _settings().is_development:
            body["details"] = f"{type(error).__name__}: {error}"
        return jsonify(body), 500


def create_app(
    settings: Settings,
    mongo_handler=None,
    captcha_verifier=None,
) -> Flask:
    """
    Build the Flask application.

    Args:
        settings (Settings): Configuration loaded once at start-up.
        mongo_handler (optional): Store to use. Defaults to a MongoDBHandler
            connected with `settings`.
        captcha_verifier (optional): reCAPTCHA client. Defaults to a
            RecaptchaVerifier built from `settings`.

    Returns:
        Flask: The configured application.
    """
    setup_logger(settings.log_path, settings.log_filename, settings.log_level)

    app = Flask(__name__)
    app.config["SETTINGS"] = settings

    CORS(
        app,
        resources={r"/*": {"origins": [settings.frontend_url]}},
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", ADMIN_KEY_HEADER],
        supports_credentials=True,
    )
    Swagger(app, template=template)

    if mongo_handler is None:
        mongo_handler = MongoDBHandler.from_settings(settings)
    if captcha_verifier is None:
        captcha_verifier = RecaptchaVerifier.from_settings(settings)

    app.extensions["mongo_handler"] = mongo_handler
    app.extensions["submission_pipeline"] = SubmissionPipeline(mongo_handler, captcha_verifier)

    app.register_blueprint(bp)
    register_error_handlers(app)
    return app


if __name__ == '__main__':
    settings = load_settings()
    create_app(settings).run(port=settings.port, debug=settings.is_development)
