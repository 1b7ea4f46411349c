from __future__ import annotations

from flask import Blueprint, jsonify, request

from painel.analytics.filters import parse_filter_spec
from painel.application.records_service import parse_id_list, parse_return_input
from painel.application.reports_service import ReportsService
from painel.db import get_db, get_read_db
from painel.routes.common import current_actor, records_service, reference_now, request_payload


devolucoes_bp = Blueprint("devolucoes", __name__, url_prefix="/api/devolucoes")

_REPORTS_SERVICE = ReportsService()


def _snapshot():
    return records_service().return_snapshot(get_read_db(), current_actor())


@devolucoes_bp.route("", methods=["GET", "POST"])
def devolucoes_api():
    if request.method == "POST":
        payload, uploads = request_payload()
        result = records_service().create_return(
            get_db(),
            current_actor(),
            parse_return_input(payload, uploads),
            reference_now(),
        )
        return jsonify(result.payload), result.status_code

    result = _REPORTS_SERVICE.return_history(_snapshot(), parse_filter_spec(request.args), reference_now())
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/<int:return_id>", methods=["PATCH", "DELETE"])
def devolucao_api(return_id: int):
    service = records_service()
    if request.method == "DELETE":
        result = service.delete_return(get_db(), current_actor(), return_id)
        return jsonify(result.payload), result.status_code

    payload, uploads = request_payload()
    result = service.update_return(
        get_db(),
        current_actor(),
        return_id,
        parse_return_input(payload, uploads, partial=True),
        reference_now(),
    )
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/<int:return_id>/status", methods=["POST"])
def devolucao_status_api(return_id: int):
    payload = request.get_json(silent=True) or {}
    requested = str(payload.get("status") or "").strip().lower() or None
    result = records_service().change_return_status(
        get_db(),
        current_actor(),
        return_id,
        reference_now(),
        requested=requested,
    )
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/excluir", methods=["POST"])
def devolucoes_batch_delete_api():
    ids = parse_id_list(request.get_json(silent=True))
    result = records_service().delete_returns(get_db(), current_actor(), ids)
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/dashboard", methods=["GET"])
def devolucoes_dashboard_api():
    result = _REPORTS_SERVICE.return_dashboard(
        _snapshot(),
        parse_filter_spec(request.args),
        reference_now(),
        request.args.get("granularity") or request.args.get("agrupamento"),
    )
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/relatorios/<string:kind>", methods=["GET"])
def devolucoes_report_api(kind: str):
    result = _REPORTS_SERVICE.return_report(_snapshot(), parse_filter_spec(request.args), reference_now(), kind)
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/resumos/<string:kind>", methods=["GET"])
def devolucoes_digest_api(kind: str):
    result = _REPORTS_SERVICE.return_digest(_snapshot(), parse_filter_spec(request.args), reference_now(), kind)
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/<int:return_id>/mensagem", methods=["GET"])
def devolucao_message_api(return_id: int):
    record = records_service().get_return(get_read_db(), current_actor(), return_id)
    result = _REPORTS_SERVICE.return_message(record)
    return jsonify(result.payload), result.status_code


@devolucoes_bp.route("/filtros", methods=["GET"])
def devolucoes_filters_api():
    result = _REPORTS_SERVICE.return_filter_options(_snapshot())
    return jsonify(result.payload), result.status_code
