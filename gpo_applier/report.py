# report.py
# ApplyReport 的 TXT / CSV / PDF 輸出（HTML 見 report_html.py）
import csv
import datetime
from xml.sax.saxutils import escape
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib import colors

RESULT_COLORS = {
    "APPLIED": colors.HexColor("#2e7d32"),
    "SKIPPED": colors.HexColor("#6b7280"),
    "FAILED": colors.HexColor("#c62828"),
}


def _header_lines(report):
    lines = [
        f"容器 (GPO): {report.container_id}{' (新建立)' if report.container_created else ''}",
        f"目錄: {report.catalog_id}",
        f"開始: {report.started_at}  完成: {report.finished_at}",
    ]
    if report.context:
        flags = ", ".join(f"{k}={'true' if v else 'false'}" for k, v in sorted(report.context.items()))
        lines.append(f"環境旗標: {flags}")
    if report.linked_scope:
        lines.append(f"連結目標: {report.linked_scope}")
    if report.backup is not None:
        lines.append(f"備份: {report.backup.destination} ({report.backup.backup_id})")
    lines.append(
        f"嘗試 {report.attempted} 項 | 套用 {len(report.applied)} | 略過 {len(report.skipped)} | 失敗 {len(report.failed)}"
    )
    return lines


def generate_txt(filename, report):
    with open(filename, "w", encoding="utf-8") as f:
        f.write(f"GPO 套用報告 - {datetime.datetime.now()}\n")
        f.write("="*80 + "\n")
        for line in _header_lines(report):
            f.write(line + "\n")
        for warning in report.warnings:
            f.write(f"警告: {warning}\n")
        f.write("\n")
        for result, setting, detail in report.rows():
            f.write(f"[{result}] {setting.label} = {setting.value} | {detail}\n")


def generate_csv(filename, report):
    with open(filename, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["container", "result", "key", "name", "value", "applies_when", "detail"])
        for result, setting, detail in report.rows():
            writer.writerow([
                report.container_id, result, setting.key, setting.name,
                str(setting.value), setting.applies_when.describe(), detail,
            ])


def generate_pdf(filename, report):
    # 需要 reportlab，若未安裝會拋出例外，由呼叫端處理
    doc = SimpleDocTemplate(filename, pagesize=A4)
    styles = getSampleStyleSheet()
    story = []
    story.append(Paragraph("GPO 套用報告", styles["Title"]))
    story.append(Paragraph(f"產生時間: {datetime.datetime.now()}", styles["Normal"]))
    story.append(Spacer(1,12))
    for line in _header_lines(report):
        story.append(Paragraph(escape(line), styles["Normal"]))
    for warning in report.warnings:
        story.append(Paragraph(escape(f"警告: {warning}"), styles["Normal"]))
    story.append(Spacer(1,12))

    data = [["結果", "設定", "值", "說明"]]
    row_styles = []
    for idx, (result, setting, detail) in enumerate(report.rows(), start=1):
        data.append([result, Paragraph(escape(setting.label), styles["BodyText"]), str(setting.value),
                     Paragraph(escape(str(detail)), styles["BodyText"])])
        row_styles.append(("TEXTCOLOR", (0, idx), (0, idx), RESULT_COLORS[result]))
    tbl = Table(data, colWidths=[60,260,70,120], repeatRows=1)
    tbl.setStyle(TableStyle([
        ("BACKGROUND",(0,0),(-1,0),colors.lightgrey),
        ("GRID",(0,0),(-1,-1),0.5,colors.grey),
        ("VALIGN",(0,0),(-1,-1),"TOP"),
    ] + row_styles))
    story.append(tbl)
    doc.build(story)
