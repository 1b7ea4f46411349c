from flask import Blueprint, current_app, jsonify, send_from_directory

from painel.ui_strings import frontend_bundle, get_ui_text


home_bp = Blueprint("home", __name__)


@home_bp.route("/")
def home():
    return jsonify(
        {
            "app": get_ui_text("title.home"),
            "endpoints": {
                "devolucoes": "/api/devolucoes",
                "ocorrencias": "/api/ocorrencias",
                "opcoes": "/api/opcoes",
                "login": "/api/auth/login",
                "health": "/health",
            },
        }
    )


@home_bp.route("/api/opcoes")
def options():
    return jsonify(frontend_bundle())


@home_bp.route("/anexos/<path:filename>")
def attachment(filename: str):
    return send_from_directory(current_app.config["UPLOAD_DIR"], filename)
