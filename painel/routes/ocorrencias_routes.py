from __future__ import annotations

from flask import Blueprint, jsonify, request

from painel.analytics.filters import parse_filter_spec
from painel.application.records_service import parse_id_list, parse_occurrence_input
from painel.application.reports_service import ReportsService
from painel.db import get_db, get_read_db
from painel.routes.common import current_actor, records_service, reference_now, request_payload


ocorrencias_bp = Blueprint("ocorrencias", __name__, url_prefix="/api/ocorrencias")

_REPORTS_SERVICE = ReportsService()


def _snapshot():
    return records_service().occurrence_snapshot(get_read_db(), current_actor())


@ocorrencias_bp.route("", methods=["GET", "POST"])
def ocorrencias_api():
    if request.method == "POST":
        payload, _uploads = request_payload()
        result = records_service().create_occurrence(
            get_db(),
            current_actor(),
            parse_occurrence_input(payload),
            reference_now(),
        )
        return jsonify(result.payload), result.status_code

    result = _REPORTS_SERVICE.occurrence_history(_snapshot(), parse_filter_spec(request.args), reference_now())
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/<int:occurrence_id>", methods=["PATCH", "DELETE"])
def ocorrencia_api(occurrence_id: int):
    service = records_service()
    if request.method == "DELETE":
        result = service.delete_occurrence(get_db(), current_actor(), occurrence_id)
        return jsonify(result.payload), result.status_code

    payload, _uploads = request_payload()
    result = service.update_occurrence(
        get_db(),
        current_actor(),
        occurrence_id,
        parse_occurrence_input(payload, partial=True),
    )
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/excluir", methods=["POST"])
def ocorrencias_batch_delete_api():
    ids = parse_id_list(request.get_json(silent=True))
    result = records_service().delete_occurrences(get_db(), current_actor(), ids)
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/dashboard", methods=["GET"])
def ocorrencias_dashboard_api():
    result = _REPORTS_SERVICE.occurrence_dashboard(
        _snapshot(),
        parse_filter_spec(request.args),
        reference_now(),
        request.args.get("granularity") or request.args.get("agrupamento"),
    )
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/relatorios/<string:kind>", methods=["GET"])
def ocorrencias_report_api(kind: str):
    result = _REPORTS_SERVICE.occurrence_report(_snapshot(), parse_filter_spec(request.args), reference_now(), kind)
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/resumos/<string:kind>", methods=["GET"])
def ocorrencias_digest_api(kind: str):
    result = _REPORTS_SERVICE.occurrence_digest(_snapshot(), parse_filter_spec(request.args), reference_now(), kind)
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/<int:occurrence_id>/mensagem", methods=["GET"])
def ocorrencia_message_api(occurrence_id: int):
    record = records_service().get_occurrence(get_read_db(), current_actor(), occurrence_id)
    result = _REPORTS_SERVICE.occurrence_message(record)
    return jsonify(result.payload), result.status_code


@ocorrencias_bp.route("/filtros", methods=["GET"])
def ocorrencias_filters_api():
    result = _REPORTS_SERVICE.occurrence_filter_options(_snapshot())
    return jsonify(result.payload), result.status_code
