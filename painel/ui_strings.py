from __future__ import annotations

from typing import Dict, List

from painel.analytics.periods import period_options
from painel.domain.records import RETURN_STATUSES, STATUS_LABELS as RETURN_STATUS_LABELS


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Painel de Devolucoes",
    "return": "Devolucao",
    "occurrence": "Ocorrencia",
    "line_item": "Produto devolvido",
    "client": "Cliente",
    "seller": "Vendedor",
    "network": "Rede",
    "driver": "Motorista",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "devolucao": [
        {
            "key": "pendente",
            "label": RETURN_STATUS_LABELS["pendente"],
            "description": "Devolucao registrada aguardando revisao.",
        },
        {
            "key": "em_analise",
            "label": RETURN_STATUS_LABELS["em_analise"],
            "description": "Status legado, mantido para registros antigos.",
        },
        {
            "key": "revisado",
            "label": RETURN_STATUS_LABELS["revisado"],
            "description": "Devolucao conferida pelo responsavel.",
        },
        {
            "key": "finalizado",
            "label": RETURN_STATUS_LABELS["finalizado"],
            "description": "Devolucao encerrada, sem novas alteracoes de status.",
        },
    ],
}


GRANULARITY_OPTIONS: List[Dict[str, str]] = [
    {"key": "daily", "label": "Diario"},
    {"key": "weekly", "label": "Semanal"},
    {"key": "monthly", "label": "Mensal"},
    {"key": "yearly", "label": "Anual"},
]


UI_TEXTS: Dict[str, str] = {
    "title.home": "Painel | Devolucoes e Ocorrencias",
    "title.returns": "Historico de devolucoes",
    "title.occurrences": "Historico de ocorrencias",
    "title.dashboard": "Dashboard",
    "title.reports": "Relatorios",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "return_saved": "Devolucao registrada com sucesso.",
        "return_updated": "Devolucao atualizada com sucesso.",
        "return_deleted": "Devolucao excluida.",
        "returns_deleted": "Devolucoes excluidas.",
        "status_updated": "Status atualizado.",
        "occurrence_saved": "Ocorrencia registrada com sucesso.",
        "occurrence_updated": "Ocorrencia atualizada com sucesso.",
        "occurrence_deleted": "Ocorrencia excluida.",
        "occurrences_deleted": "Ocorrencias excluidas.",
        "logged_out": "Sessao encerrada.",
    },
    "error": {
        "attachment_upload_failed": "Falha ao enviar o anexo. Tente novamente.",
        "auth_required": "Autenticacao necessaria.",
        "auth_invalid_credentials": "Credenciais invalidas. Tente novamente.",
        "auth_missing_credentials": "Informe email e senha.",
        "client_required": "Informe o cliente.",
        "date_invalid": "Data informada e invalida.",
        "granularity_invalid": "Agrupamento informado e invalido.",
        "ids_required": "Selecione ao menos um registro.",
        "items_required": "Informe ao menos um produto devolvido.",
        "no_changes": "Nenhuma alteracao informada.",
        "record_not_found": "Registro nao encontrado.",
        "occurrence_not_found": "Ocorrencia nao encontrada.",
        "payload_invalid": "Dados enviados sao invalidos.",
        "product_required": "Informe o produto de cada item.",
        "quantity_invalid": "Quantidade invalida.",
        "rate_limited": "Muitas requisicoes. Aguarde alguns instantes.",
        "report_kind_invalid": "Tipo de relatorio desconhecido.",
        "return_not_found": "Devolucao nao encontrada.",
        "status_not_editable": "O status so pode ser alterado pela acao de revisao.",
        "status_transition_invalid": "Este status nao pode ser alterado.",
        "storage_unavailable": "Armazenamento indisponivel no momento.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
    },
    "confirm": {
        "delete_return": "Confirma a exclusao da devolucao?",
        "delete_returns": "Confirma a exclusao das devolucoes selecionadas?",
        "delete_occurrence": "Confirma a exclusao da ocorrencia?",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def get_ui_text(key: str, default: str | None = None) -> str:
    if key in UI_TEXTS:
        return UI_TEXTS[key]
    if default is not None:
        return default
    return key


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def frontend_bundle() -> Dict[str, object]:
    return {
        "terms": FRIENDLY_TERMS,
        "statuses": list(RETURN_STATUSES),
        "status_labels": dict(RETURN_STATUS_LABELS),
        "status_groups": STATUS_GROUPS,
        "periods": period_options(),
        "granularities": [dict(item) for item in GRANULARITY_OPTIONS],
        "texts": UI_TEXTS,
        "messages": MESSAGES,
    }
