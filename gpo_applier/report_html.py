# report_html.py
import datetime
import json
from html import escape

RESULT_COLORS = {
    "APPLIED": "#2e7d32",
    "SKIPPED": "#6b7280",
    "FAILED": "#c62828",
}


def sanitize(text):
    return escape(str(text))


def _collect_sections(report):
    sections = {"APPLIED": [], "FAILED": [], "SKIPPED": []}
    for result, setting, detail in report.rows():
        sections[result].append({
            "key": setting.key,
            "name": setting.name,
            "value": str(setting.value),
            "when": setting.applies_when.describe(),
            "detail": detail,
        })
    return sections


def _key_counts(items):
    # 依登錄機碼最後一段分組計數，給長條圖使用
    counts = {}
    for item in items:
        leaf = item["key"].rsplit("\\", 1)[-1]
        counts[leaf] = counts.get(leaf, 0) + 1
    return counts


def generate_html(filename, report):
    sections = _collect_sections(report)
    generated = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    applied_items = sections["APPLIED"]
    failed_items = sections["FAILED"]
    skipped_items = sections["SKIPPED"]

    # </script> 之類的字串不可直接出現在 <script> 區塊內
    def js(obj): return json.dumps(obj, ensure_ascii=False).replace("</", "<\\/")
    applied_counts = _key_counts(applied_items)
    failed_counts = _key_counts(failed_items)

    def build_table(items):
        if not items:
            return "<div class='meta'>無資料</div>"
        rows = []
        for item in items:
            rows.append(
                "<tr>"
                f"<td>{sanitize(item['key'])}</td>"
                f"<td>{sanitize(item['name'])}</td>"
                f"<td>{sanitize(item['value'])}</td>"
                f"<td>{sanitize(item['when'])}</td>"
                f"<td>{sanitize(item['detail'])}</td>"
                "</tr>"
            )
        return (
            "<div class='table-wrap'>"
            "<table>"
            "<thead><tr><th>登錄機碼</th><th>值名稱</th><th>值</th><th>適用條件</th><th>說明</th></tr></thead>"
            "<tbody>"
            + "".join(rows) +
            "</tbody>"
            "</table>"
            "</div>"
        )

    warnings_html = "".join(f"<li>{sanitize(w)}</li>" for w in report.warnings) or "<li>無</li>"
    context_html = ", ".join(
        f"{sanitize(k)}={'true' if v else 'false'}" for k, v in sorted(report.context.items())
    ) or "（無）"
    backup_html = sanitize(report.backup.destination) if report.backup is not None else "未備份"

    html = f"""<!doctype html>
<html lang="zh-Hant">
<head>
<meta charset="utf-8">
<title>GPO 套用報告 - {sanitize(report.container_id)}</title>
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@300;400;600;700&display=swap" rel="stylesheet">
<style>
body{{font-family:Inter,Arial,Helvetica,sans-serif;background:#f6f8fb;color:#111;margin:0;padding:20px}}
.container{{max-width:1200px;margin:auto}}
.header{{display:flex;justify-content:space-between;align-items:center;flex-wrap:wrap}}
.title{{font-size:22px;font-weight:700}}
.meta{{color:#6b7280;font-size:13px}}
.stat{{font-size:28px;font-weight:700;color:#1565c0}}
.grid{{display:grid;grid-template-columns:repeat(auto-fit,minmax(320px,1fr));gap:16px;margin-top:20px}}
.card{{background:#fff;border-radius:10px;padding:14px;box-shadow:0 4px 12px rgba(0,0,0,0.08)}}
.card h3{{margin:0 0 8px;font-size:16px}}
.badge{{display:inline-block;padding:4px 8px;border-radius:8px;font-weight:700;color:#fff}}
.badge.applied{{background:{RESULT_COLORS['APPLIED']}}}
.badge.failed{{background:{RESULT_COLORS['FAILED']}}}
.badge.skipped{{background:{RESULT_COLORS['SKIPPED']}}}
.table-wrap{{max-height:260px;overflow:auto;margin-top:10px}}
table{{width:100%;border-collapse:collapse}}
th,td{{padding:6px;border-bottom:1px solid #eee;font-size:13px;text-align:left;word-break:break-all}}
th{{background:#f9fafb;font-weight:700}}
.chart{{height:220px}}
.counts{{display:flex;gap:10px;flex-wrap:wrap;margin:6px 0 10px}}
.pill{{display:inline-flex;align-items:center;gap:6px;padding:4px 8px;border-radius:999px;background:#f3f4f6;font-size:13px}}
</style>
</head>
<body>
<div class="container">
  <div class="header">
    <div>
      <div class="title">GPO 套用報告：{sanitize(report.container_id)}</div>
      <div class="meta">目錄: {sanitize(report.catalog_id)} | 產生時間: {sanitize(generated)}</div>
      <div class="meta">環境旗標: {context_html} | 連結目標: {sanitize(report.linked_scope or '（無）')} | 備份: {backup_html}</div>
    </div>
    <div>
      <div class="stat">{len(report.applied)} / {report.attempted}</div>
      <div class="meta">已套用 / 總設定數</div>
    </div>
  </div>

  <div class="grid">
    <div class="card">
      <h3>摘要</h3>
      <div class="counts">
        <div class="pill"><span class="badge applied">APPLIED</span> {len(applied_items)}</div>
        <div class="pill"><span class="badge failed">FAILED</span> {len(failed_items)}</div>
        <div class="pill"><span class="badge skipped">SKIPPED</span> {len(skipped_items)}</div>
      </div>
      <div class="meta">警告：</div>
      <ul class="meta">{warnings_html}</ul>
    </div>

    <div class="card">
      <h3><span class="badge failed">FAILED</span> 後端拒絕的設定</h3>
      <div class="chart"><canvas id="failedChart"></canvas></div>
      {build_table(failed_items)}
    </div>

    <div class="card">
      <h3><span class="badge applied">APPLIED</span> 已套用設定</h3>
      <div class="chart"><canvas id="appliedChart"></canvas></div>
      {build_table(applied_items)}
    </div>

    <div class="card">
      <h3><span class="badge skipped">SKIPPED</span> 條件不符而略過</h3>
      {build_table(skipped_items)}
    </div>
  </div>
</div>

<script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
<script>
function createChart(id, labels, values, color) {{
  const canvas = document.getElementById(id);
  if (!canvas) return;
  const ctx = canvas.getContext('2d');
  if (!labels || labels.length === 0) {{
    ctx.font = "14px Arial";
    ctx.fillStyle = "#666";
    ctx.fillText("無資料", 10, 20);
    return;
  }}
  new Chart(ctx, {{
    type: 'bar',
    data: {{ labels: labels, datasets: [{{ data: values, backgroundColor: color }}] }},
    options: {{
      indexAxis: 'y',
      plugins: {{ legend: {{ display: false }} }},
      scales: {{ x: {{ beginAtZero: true, ticks: {{ stepSize: 1 }} }} }},
      responsive: true,
      maintainAspectRatio: false
    }}
  }});
}}
document.addEventListener('DOMContentLoaded', function() {{
  createChart('appliedChart', {js(list(applied_counts))}, {js(list(applied_counts.values()))}, {js(RESULT_COLORS['APPLIED'])});
  createChart('failedChart', {js(list(failed_counts))}, {js(list(failed_counts.values()))}, {js(RESULT_COLORS['FAILED'])});
}});
</script>
</body>
</html>
"""

    # 寫檔
    with open(filename, "w", encoding="utf-8") as f:
        f.write(html)
