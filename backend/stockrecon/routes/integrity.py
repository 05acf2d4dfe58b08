# backend/stockrecon/routes/integrity.py
"""
Integrity routes.

- GET  /api/integrity/report   run all four passes and return the report
- POST /api/integrity/repair   auto-repair, then return the repair summary
                               and a fresh report

Drift is data: a report with issues is still a 200.
"""

from flask import Blueprint, jsonify, current_app

from ..errors import PersistenceError
from ..services import current_services


integrity_bp = Blueprint("integrity", __name__, url_prefix="/api/integrity")


@integrity_bp.get("/report")
def integrity_report_route():
    report = current_services().integrity.run_check()
    return jsonify(report.to_dict()), 200


@integrity_bp.post("/repair")
def integrity_repair_route():
    services = current_services()
    try:
        result = services.repair.auto_repair()
    except PersistenceError:
        current_app.logger.exception("Auto-repair could not read integrity data")
        return jsonify({"error": "Storage error"}), 500

    report = services.integrity.run_check()
    return jsonify({
        "repair": result.to_dict(),
        "report": report.to_dict(),
    }), 200
