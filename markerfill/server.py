"""
HTTP Microservice
=================
Flask-based HTTP API around the template engine.

Endpoints:
    GET    /api/health                   → Health check
    POST   /api/templates                → Upload a template (multipart "file")
    GET    /api/templates/<id>/manifest  → Stored manifest
    POST   /api/generate                 → Fill a template, returns the PDF
    POST   /api/calculate                → Consumption calculation
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from flask import Flask, current_app, jsonify, request, send_file
from flask_cors import CORS
from pydantic import ValidationError

from . import __version__
from .calculations import calculate_consumption, options_from_env, validate_calculation_data
from .engine import EngineConfig, TemplateEngine
from .errors import MarkerFillError
from .models import CalculationOptions, FillOptions

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_STATUS_BY_KIND = {
    "template_not_found": 404,
    "validation_error": 400,
    "malformed_document": 422,
    "font_unavailable": 422,
    "template_load_error": 500,
}


def create_app(config: Optional[dict] = None, engine: Optional[TemplateEngine] = None) -> Flask:
    """Create and configure the Flask app."""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES
    app.config.setdefault("CORS_ORIGINS", "*")
    if config:
        app.config.update(config)

    CORS(app, origins=app.config["CORS_ORIGINS"])

    if engine is None:
        engine_config = EngineConfig.from_env()
        if app.config.get("STORAGE_DIR"):
            engine_config.storage_dir = app.config["STORAGE_DIR"]
        engine = TemplateEngine(engine_config)
    app.extensions["markerfill"] = engine

    _register_routes(app)
    return app


def _engine() -> TemplateEngine:
    return current_app.extensions["markerfill"]


def _error(code: str, message: str, status: int, details: Optional[str] = None):
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return jsonify(body), status


def _register_routes(app: Flask) -> None:

    @app.errorhandler(MarkerFillError)
    def handle_markerfill_error(e: MarkerFillError):
        status = _STATUS_BY_KIND.get(e.kind, 500)
        logger.warning(f"{e.kind}: {e.message}")
        return jsonify(e.to_dict()), status

    @app.errorhandler(413)
    def handle_too_large(e):
        return _error("FILE_TOO_LARGE", "File too large (max 10MB)", 400)

    # ─── Health Check ─────────────────────────────────────────────────────

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "healthy",
            "service": "markerfill",
            "version": __version__,
        })

    # ─── Templates ────────────────────────────────────────────────────────

    @app.route("/api/templates", methods=["POST"])
    def upload_template():
        file = request.files.get("file")
        if file is None or not file.filename:
            return _error("NO_FILE", "No file provided", 400)
        if file.mimetype not in ("application/pdf", "application/octet-stream") \
                and not file.filename.lower().endswith(".pdf"):
            return _error("INVALID_FILE", "Only PDF files are accepted", 400)

        try:
            options = FillOptions.model_validate(request.form.to_dict())
        except ValidationError as e:
            return _error("INVALID_OPTIONS", "Invalid upload options", 400, str(e))

        registration = _engine().upload(file.read(), file.filename, options)
        return jsonify({
            "success": True,
            "templateId": registration.template_id,
            "manifest": registration.manifest.to_json_dict(),
            "cached": not registration.created,
        })

    @app.route("/api/templates/<template_id>/manifest", methods=["GET"])
    def get_manifest(template_id: str):
        manifest = _engine().get_manifest(template_id)
        return jsonify({"success": True, "manifest": manifest.to_json_dict()})

    # ─── Generate ─────────────────────────────────────────────────────────

    @app.route("/api/generate", methods=["POST"])
    def generate():
        data = request.get_json(silent=True) or {}
        template_id = data.get("templateId")
        values = data.get("values")

        if not template_id:
            return _error("MISSING_TEMPLATE_ID", "templateId is required", 400)
        if not isinstance(values, dict):
            return _error("INVALID_VALUES", "values must be an object", 400)
        bad = [k for k, v in values.items()
               if v is not None and not isinstance(v, (str, int, float))]
        if bad:
            return _error("INVALID_VALUES", f"values must be scalars: {', '.join(bad)}", 400)

        try:
            options = FillOptions.model_validate(data.get("options") or {})
        except ValidationError as e:
            return _error("INVALID_OPTIONS", "Invalid fill options", 400, str(e))

        pdf_bytes = _engine().generate(template_id, values, options)
        return send_file(
            io.BytesIO(pdf_bytes),
            mimetype="application/pdf",
            as_attachment=True,
            download_name="filled_template.pdf",
        )

    # ─── Calculate ────────────────────────────────────────────────────────

    @app.route("/api/calculate", methods=["POST"])
    def calculate():
        data = request.get_json(silent=True)
        errors = validate_calculation_data(data)
        if errors:
            return _error("INVALID_DATA", "; ".join(errors), 400)

        try:
            options = (
                CalculationOptions.model_validate(data["options"])
                if data.get("options") else options_from_env()
            )
        except ValidationError as e:
            return _error("INVALID_OPTIONS", "Invalid calculation options", 400, str(e))

        result = calculate_consumption(data["dailyConsumption"], options)
        return jsonify({
            "success": True,
            "dailyConsumption": result.daily,
            "hourlyConsumption": result.hourly,
            "secondlyConsumption": result.secondly,
        })


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the microservice server."""
    app = create_app()
    app.run(host=host, port=port, debug=debug, threaded=True)
