from flask import Blueprint, Response, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import export_service, reporting_service
from stockledger.time_utils import org_today


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> dict:
    return {"start": request.args.get("start"), "end": request.args.get("end")}


def _csv_download(name: str, rows: list[dict], columns) -> Response:
    body = export_service.rows_to_csv(rows, columns)
    filename = f"{name}-{org_today().isoformat()}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@reports_bp.get("/sales")
@require_actor
@require_role(ROLE_ADMIN)
def sales_report():
    try:
        report = reporting_service.sales_report(**_range_args(), group_by=request.args.get("group_by", "day"))
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)


@reports_bp.get("/purchases")
@require_actor
@require_role(ROLE_ADMIN)
def purchases_report():
    try:
        report = reporting_service.purchases_report(
            **_range_args(), group_by=request.args.get("group_by", "day")
        )
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)


@reports_bp.get("/stock")
@require_actor
@require_role(ROLE_ADMIN)
def stock_report():
    return jsonify(reporting_service.stock_report()), 200


@reports_bp.get("/expenses")
@require_actor
@require_role(ROLE_ADMIN)
def expenses_report():
    try:
        report = reporting_service.expenses_report(
            **_range_args(), group_by=request.args.get("group_by", "day")
        )
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)


@reports_bp.get("/dashboard")
@require_actor
@require_role(ROLE_ADMIN)
def dashboard():
    return jsonify(reporting_service.dashboard_summary()), 200


@reports_bp.get("/sales/export")
@require_actor
@require_role(ROLE_ADMIN)
def export_sales():
    try:
        rows = export_service.sales_rows(**_range_args())
    except LedgerError as exc:
        return error_response(exc)
    return _csv_download("sales-report", rows, export_service.SALES_COLUMNS)


@reports_bp.get("/purchases/export")
@require_actor
@require_role(ROLE_ADMIN)
def export_purchases():
    try:
        rows = export_service.purchases_rows(**_range_args())
    except LedgerError as exc:
        return error_response(exc)
    return _csv_download("purchases-report", rows, export_service.PURCHASES_COLUMNS)


@reports_bp.get("/stock/export")
@require_actor
@require_role(ROLE_ADMIN)
def export_stock():
    return _csv_download("stock-report", export_service.stock_rows(), export_service.STOCK_COLUMNS)


@reports_bp.get("/expenses/export")
@require_actor
@require_role(ROLE_ADMIN)
def export_expenses():
    try:
        rows = export_service.expenses_rows(**_range_args())
    except LedgerError as exc:
        return error_response(exc)
    return _csv_download("expenses-report", rows, export_service.EXPENSES_COLUMNS)
