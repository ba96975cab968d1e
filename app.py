"""
Statement Generator JSON API

Upload a trial balance, map its columns, build statements and notes, keep
totals consistent through edits and post adjustment journals.
"""

from __future__ import annotations

import io
from typing import Any, Dict, List, Optional

from flask import Flask, request, send_file
from werkzeug.utils import secure_filename

from statement_generator import __version__
from statement_generator.api_client import ApiClient
from statement_generator.column_mapper import ColumnMapper
from statement_generator.config import ApiConfig, AppConfig
from statement_generator.editors import NotesEditor
from statement_generator.errors import (
    ApiError,
    EmptyBatchError,
    MappingValidationError,
    SchemaError,
    StatementError,
)
from statement_generator.excel_parser import ALLOWED_EXTENSIONS, read_workbook
from statement_generator.exporter import export_workbook, workbook_bytes
from statement_generator.hierarchy import apply_edit, recalculate
from statement_generator.journal import EMPTY_BATCH_MESSAGE, build_batch
from statement_generator.logging_setup import configure_logging, get_logger
from statement_generator.schema import (
    FinancialNote,
    HierarchicalItem,
    JournalRow,
    MappedRow,
    TableContent,
    TransactionType,
    ValueField,
)
from statement_generator.statement_builder import build_cash_flow, build_statement, template
from statement_generator import table_editor

# -------------------------------------------------------
# App Setup
# -------------------------------------------------------

config = AppConfig(api=ApiConfig.from_env())

configure_logging(config.log_level, config.log_file)
logger = get_logger("app")

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.max_upload_bytes

client = ApiClient(config.api)

EXPORT_FILENAME = "Financial_Statements.xlsx"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# -------------------------------------------------------
# Helpers
# -------------------------------------------------------

def allowed_file(filename: str) -> bool:
    return "." in filename and "." + filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise SchemaError("Request body must be a JSON object")
    return body


def require(body: Dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if k not in body]
    if missing:
        raise SchemaError(f"Missing field(s): {', '.join(missing)}")


def parse_path(raw: Any) -> tuple:
    if not isinstance(raw, list) or not raw:
        raise SchemaError("'path' must be a non-empty list of indices")
    try:
        return tuple(int(i) for i in raw)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Invalid path {raw!r}") from exc


def parse_value_field(raw: Any) -> ValueField:
    try:
        return ValueField(raw)
    except ValueError as exc:
        raise SchemaError(f"'field' must be 'valueCurrent' or 'valuePrevious', got {raw!r}") from exc


def parse_amount(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Amount {raw!r} is not a number") from exc


def parse_index(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise SchemaError(f"'{name}' must be an integer, got {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"'{name}' must be an integer, got {raw!r}") from exc


def object_from(raw: Any, name: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise SchemaError(f"'{name}' must be an object")
    return raw


def objects_from(raw: Any, name: str) -> List[Dict[str, Any]]:
    if not isinstance(raw, list) or not all(isinstance(r, dict) for r in raw):
        raise SchemaError(f"'{name}' must be a list of objects")
    return raw


def strings_from(raw: Any, name: str) -> List[str]:
    if not isinstance(raw, list) or not all(isinstance(s, str) for s in raw):
        raise SchemaError(f"'{name}' must be a list of strings")
    return raw


def periods_from(raw: Any) -> Optional[Dict[str, dict]]:
    if raw is None:
        return None
    periods = object_from(raw, "periods")
    for name, meta in periods.items():
        object_from(meta, f"periods.{name}")
    return periods


def items_from(raw: Any) -> List[HierarchicalItem]:
    return [HierarchicalItem.from_dict(i) for i in objects_from(raw, "items")]


def journal_rows_from(raw: Any) -> List[JournalRow]:
    rows: List[JournalRow] = []
    for r in objects_from(raw, "rows"):
        amounts = r.get("amounts") or {}
        if not isinstance(amounts, dict):
            raise SchemaError(f"'amounts' must be an object keyed by period, got {amounts!r}")
        try:
            kind = TransactionType(r.get("transactionType", TransactionType.DEBIT.value))
        except ValueError as exc:
            raise SchemaError(f"Unknown transaction type {r.get('transactionType')!r}") from exc
        rows.append(JournalRow(
            selected_gl_account=r.get("glAccount") or None,
            transaction_type=kind,
            amounts=dict(amounts),
        ))
    return rows


# -------------------------------------------------------
# Error handling
# -------------------------------------------------------

@app.errorhandler(StatementError)
def handle_statement_error(exc: StatementError):
    logger.warning("Rejected request to %s: %s", request.path, exc)
    return {"success": False, "error": str(exc)}, 400


@app.errorhandler(MappingValidationError)
def handle_mapping_validation_error(exc: MappingValidationError):
    logger.warning("Mapping rejected: %s", exc.missing)
    return {"success": False, "error": str(exc), "missing": exc.missing}, 400


@app.errorhandler(ApiError)
def handle_api_error(exc: ApiError):
    logger.error("Backend call failed during %s: %s", request.path, exc)
    return {"success": False, "error": str(exc), "status": exc.status_code}, 502


# -------------------------------------------------------
# API
# -------------------------------------------------------

@app.route("/api/health", methods=["GET"])
def api_health():
    return {
        "status": "online",
        "version": __version__,
        "backend": config.api.base_url,
    }, 200


@app.route("/api/upload", methods=["POST"])
def api_upload():
    """Read an uploaded trial balance and propose a column mapping."""
    if "file" not in request.files:
        return {"success": False, "error": "No file uploaded"}, 400

    file = request.files["file"]

    if file.filename == "":
        return {"success": False, "error": "No file selected"}, 400

    if not allowed_file(file.filename):
        return {
            "success": False,
            "error": f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        }, 400

    filename = secure_filename(file.filename)
    columns, rows = read_workbook(io.BytesIO(file.read()), filename=filename)
    mapper = ColumnMapper(columns, config.mapper)
    logger.info("Upload %r: %d rows, %d columns", filename, len(rows), len(columns))

    return {
        "success": True,
        "filename": filename,
        "columns": columns,
        "rows": rows,
        "mapping": mapper.mapping,
        "suggestions": {
            name: [s.to_dict() for s in found]
            for name, found in mapper.unmapped_suggestions().items()
        },
    }, 200


@app.route("/api/mapping/confirm", methods=["POST"])
def api_mapping_confirm():
    """Apply the user's mapping to the uploaded rows.

    With ``"send": true`` the backend variables are fetched first and the
    result is forwarded; a failed send is reported in ``error`` while the
    mapped rows are still returned.
    """
    body = json_body()
    require(body, "columns", "rows")

    mapper = ColumnMapper(strings_from(body["columns"], "columns"), config.mapper)
    mapper.apply(object_from(body.get("mapping") or {}, "mapping"), periods_from(body.get("periods")))
    raw_rows = objects_from(body["rows"], "rows")

    send = bool(body.get("send", False))
    load_error = mapper.load_backend_variables(client) if send else None
    outcome = mapper.confirm(raw_rows, client=client if send else None)

    payload = outcome.to_dict()
    if load_error and not payload.get("error"):
        payload["error"] = load_error
    return {"success": True, **payload}, 200


@app.route("/api/statements/build", methods=["POST"])
def api_build_statement():
    body = json_body()
    require(body, "template", "rows", "currentLabel", "previousLabel")

    current, previous = strings_from([body["currentLabel"], body["previousLabel"]], "currentLabel/previousLabel")
    layout = body["template"]
    if isinstance(layout, str):
        try:
            layout = template(layout)
        except KeyError as exc:
            raise SchemaError(exc.args[0]) from exc
    else:
        layout = objects_from(layout, "template")

    rows = [MappedRow.from_dict(r, [current, previous]) for r in objects_from(body["rows"], "rows")]
    items = build_statement(layout, rows, current, previous)
    return {"success": True, "items": [i.to_dict() for i in items]}, 200


@app.route("/api/statements/cash-flow", methods=["POST"])
def api_build_cash_flow():
    body = json_body()
    require(body, "rows", "currentLabel", "previousLabel")

    current, previous = strings_from([body["currentLabel"], body["previousLabel"]], "currentLabel/previousLabel")
    rows = [MappedRow.from_dict(r, [current, previous]) for r in objects_from(body["rows"], "rows")]
    items = build_cash_flow(rows, current, previous)
    return {"success": True, "items": [i.to_dict() for i in items]}, 200


@app.route("/api/hierarchy/recalculate", methods=["POST"])
def api_recalculate():
    """Recalculate a tree, optionally applying one value edit first."""
    body = json_body()
    require(body, "items")
    items = items_from(body["items"])

    edit = body.get("edit")
    if edit:
        edit = object_from(edit, "edit")
        result = apply_edit(
            items,
            parse_path(edit.get("path")),
            parse_value_field(edit.get("field")),
            parse_amount(edit.get("value")),
        )
    else:
        result = recalculate(items)
    return {"success": True, "items": [i.to_dict() for i in result]}, 200


@app.route("/api/notes/edit", methods=["POST"])
def api_notes_edit():
    """Apply one note edit; ``"save": true`` returns the save-ready form."""
    body = json_body()
    require(body, "notes", "noteNumber")

    editor = NotesEditor(FinancialNote.from_dict(n) for n in objects_from(body["notes"], "notes"))
    number = parse_index(body["noteNumber"], "noteNumber")
    action = body.get("action", "value")

    if action == "value":
        editor.set_value(
            number,
            parse_path(body.get("path")),
            parse_value_field(body.get("field")),
            parse_amount(body.get("value")),
        )
    elif action == "narrative":
        require(body, "contentIndex", "text")
        editor.set_narrative(number, parse_index(body["contentIndex"], "contentIndex"), str(body["text"]))
    else:
        raise SchemaError(f"Unknown note action {action!r}")

    notes = editor.save() if body.get("save") else editor.notes
    return {"success": True, "notes": [n.to_dict() for n in notes]}, 200


@app.route("/api/tables/edit", methods=["POST"])
def api_tables_edit():
    """Edit one table cell; an ``isPrevious`` flag selects two-line editing."""
    body = json_body()
    require(body, "table", "row", "col", "value")

    table = TableContent.from_dict(body["table"])
    row, col = parse_index(body["row"], "row"), parse_index(body["col"], "col")
    value = str(body["value"])

    if body.get("isPrevious") is None:
        updated = table_editor.set_cell(table, row, col, value)
    else:
        updated = table_editor.set_two_line_cell(table, row, col, value, bool(body["isPrevious"]))
    return {"success": True, "table": updated.to_dict()}, 200


@app.route("/api/journal/batch", methods=["POST"])
def api_journal_batch():
    body = json_body()
    require(body, "rows", "periods")

    entries = build_batch(journal_rows_from(body["rows"]), strings_from(body["periods"], "periods"))
    if not entries:
        raise EmptyBatchError(EMPTY_BATCH_MESSAGE)

    client.post_journal_batch(entries)
    logger.info("Forwarded %d journal entries", len(entries))
    return {"success": True, "posted": [e.to_dict() for e in entries]}, 200


@app.route("/api/export", methods=["POST"])
def api_export():
    """Download statements and notes as an ``.xlsx`` workbook."""
    body = json_body()
    require(body, "statements")

    statements = {
        str(title): items_from(items)
        for title, items in object_from(body["statements"], "statements").items()
    }
    notes = [FinancialNote.from_dict(n) for n in objects_from(body.get("notes") or [], "notes")]
    headers = body.get("periodHeaders")
    if headers is not None and len(strings_from(headers, "periodHeaders")) != 2:
        raise SchemaError("'periodHeaders' must name the current and previous period")

    wb = export_workbook(statements, notes, headers)
    return send_file(
        io.BytesIO(workbook_bytes(wb)),
        as_attachment=True,
        download_name=EXPORT_FILENAME,
        mimetype=XLSX_MIMETYPE,
    )


# -------------------------------------------------------
# Main
# -------------------------------------------------------

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
