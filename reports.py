import io
import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, send_file, g
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from werkzeug.utils import secure_filename

from categories import all_categories
from criteria import credit_summary
from db_config import db_users, db_documents
from documents import can_view_user
from security import login_required

logger = logging.getLogger(__name__)

reports = Blueprint('reports', __name__, url_prefix='/reports')

LEFT = 50
ROW_HEIGHT = 18
COLUMNS = (LEFT, 300, 380, 460)


def _fmt(value):
    return f"{value:g}" if isinstance(value, (int, float)) else str(value)


def _table_header(pdf, y):
    pdf.setFont("Helvetica-Bold", 11)
    for x, label in zip(COLUMNS, ("Category", "Earned", "Max", "Approved")):
        pdf.drawString(x, y, label)
    pdf.line(LEFT, y - 4, 560, y - 4)
    pdf.setFont("Helvetica", 10)
    return y - ROW_HEIGHT


def render_appraisal_pdf(user, summary, generated_at=None):
    """Draw the credit summary of ``user`` and return the PDF bytes"""
    generated_at = generated_at or datetime.now(timezone.utc)
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=letter)
    _, height = letter

    pdf.setTitle(f"Appraisal - {user.get('name', '')}")
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(LEFT, height - 60, "TeachnGrow Faculty Appraisal")

    pdf.setFont("Helvetica", 11)
    y = height - 90
    for label, value in (
        ("Name", user.get("name", "")),
        ("Email", user.get("email", "")),
        ("Department", user.get("department", "") or "-"),
        ("Designation", user.get("designation", "") or "-"),
        ("Generated", generated_at.strftime("%d %b %Y %H:%M UTC")),
    ):
        pdf.drawString(LEFT, y, f"{label}: {value}")
        y -= ROW_HEIGHT

    y = _table_header(pdf, y - 10)
    for row in summary["categories"]:
        if y < 80:
            pdf.showPage()
            y = _table_header(pdf, height - 60)
        pdf.drawString(COLUMNS[0], y, row["categoryName"][:40])
        pdf.drawString(COLUMNS[1], y, _fmt(row["credits"]))
        pdf.drawString(COLUMNS[2], y, _fmt(row["maxCredits"]))
        pdf.drawString(COLUMNS[3], y, str(row["approved"]))
        y -= ROW_HEIGHT

    pdf.line(LEFT, y + 12, 560, y + 12)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(COLUMNS[0], y - 4, "Total")
    pdf.drawString(COLUMNS[1], y - 4, _fmt(summary["totalCredits"]))
    pdf.drawString(COLUMNS[2], y - 4, _fmt(summary["totalMaxCredits"]))
    pdf.drawString(LEFT, y - 4 - 2 * ROW_HEIGHT, f"Progress: {_fmt(summary['progress'])}%")

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


@reports.route('/<string:user_id>/appraisal.pdf', methods=['GET'])
@login_required
def appraisal_report(user_id):
    """Credit summary of one faculty member as a downloadable PDF"""
    try:
        target = db_users().find_one({"_id": user_id})
        if not target:
            return jsonify({"error": "User not found"}), 404
        if not can_view_user(g.current_user, target):
            return jsonify({"error": "Access denied"}), 403

        summary = credit_summary(
            list(db_documents().find({"userId": user_id})),
            all_categories(),
            target,
        )
        content = render_appraisal_pdf(target, summary)
        filename = secure_filename(f"appraisal_{target.get('name') or user_id}.pdf")

        return send_file(
            io.BytesIO(content),
            as_attachment=True,
            download_name=filename,
            mimetype='application/pdf'
        )

    except Exception as e:
        logger.exception("Error generating appraisal report for %s", user_id)
        return jsonify({"error": str(e)}), 500
