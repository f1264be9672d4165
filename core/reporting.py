# ================================================================
# File     : core/reporting.py
# Purpose  : Generic single-module HTML report (summary + tables)
#            with module-injected CSS/JS, plus the shared page chrome
#            (base CSS, header, footer) used by the device report.
# ================================================================

import os, html, datetime, re, json
from typing import Dict, Any, List, Tuple
from core.utils import fncPrintMessage


# ---------- tiny helpers ----------

def _esc(v: Any) -> str:
    return "" if v is None else html.escape(str(v))

def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(name).lower()).strip("-")

def _fmt_cell(val: Any) -> str:
    if isinstance(val, bool):
        return "Yes" if val else "No"
    if isinstance(val, (dict, list)):
        s = json.dumps(val, separators=(",", ":"), ensure_ascii=False, default=str)
        if len(s) > 220:
            s = s[:200] + " … +" + str(len(s) - 200) + " chars"
        return s
    return "" if val is None else str(val)

def _split_camel(name: str) -> str:
    s = re.sub(r"(?<!^)(?=[A-Z])", " ", str(name))
    s = re.sub(r"\s+", " ", s).strip()
    return s

def _pretty_section_name(key: str, section_titles: Dict[str, str] | None = None) -> str:
    section_titles = section_titles or {}
    if key in section_titles:
        return section_titles[key]
    k = _split_camel(key.replace("_", " "))
    return k.title() or key.title()

def _cell_html(val: Any) -> str:
    """
    Render a table cell:
      - list/dict -> <details class='fh-json'><summary>…</summary><pre>pretty</pre></details>
      - otherwise -> escaped text
    """
    if isinstance(val, (dict, list)) and val:
        summ = _fmt_cell(val)
        pretty = json.dumps(val, ensure_ascii=False, indent=2, default=str)
        return (
            f"<details class='fh-json'>"
            f"<summary>{_esc(summ)}</summary>"
            f"<pre>{_esc(pretty)}</pre>"
            f"</details>"
        )
    return _esc(_fmt_cell(val))

# ----- status pills -----

_PILL_CLASSES = {
    "strong": "ok", "ok": "ok", "succeeded": "ok", "enrolled": "ok", "yes": "ok",
    "weak": "warn", "what-if": "soon", "stale": "warn",
    "none": "crit", "failed": "crit", "not enrolled": "crit",
}

def _pill_class(value: Any) -> str:
    """Map a status label to a CSS class."""
    return _PILL_CLASSES.get(str(value or "").strip().lower(), "unknown")


# ---------- base CSS ----------

def _base_css() -> str:
    return """
:root{
  --accent:#14b8a6; --accent2:#0f766e; --head-text:#ffffff;
  --text:#17202b; --bg:#eef2f1; --card:#ffffff; --border:#d5dedc; --muted:#5b6b69;
  --stripe:#f4f8f7; --mono:ui-monospace,Consolas,"Cascadia Mono",monospace;
}
@media (prefers-color-scheme: dark){
  :root{ --bg:#0b1312; --card:#142120; --text:#e3efed; --border:#24403c; --muted:#8fb1ac; --stripe:#182827; }
}
*{box-sizing:border-box}
html,body{margin:0}
body{font:14px/1.55 "Segoe UI",system-ui,sans-serif;background:var(--bg);color:var(--text)}

.header{background:var(--accent2);color:var(--head-text);padding:18px 32px;border-bottom:4px solid var(--accent)}
.header h1{margin:0;font-size:1.6rem;font-weight:700}
.header h2{margin:2px 0;font-size:1.15rem;font-weight:500}
.header p{margin:2px 0 0 0;font-size:.85rem;opacity:.8}

.container{max-width:1880px;margin:20px auto;padding:20px 24px;width:96%;
  background:var(--card);border:1px solid var(--border);border-radius:8px}
h3{margin:14px 0 6px 0;padding-bottom:4px;color:var(--accent2);border-bottom:1px solid var(--border)}
.card{margin:16px 0}
.card h4{margin:0 0 6px 0}
.tablewrap{overflow-x:auto}

table{width:100%;border-collapse:collapse;margin-top:6px}
th,td{padding:7px 10px;border:1px solid var(--border);text-align:left;vertical-align:top;overflow-wrap:anywhere}
th{background:var(--accent2);color:var(--head-text);white-space:nowrap;font-weight:600}
tbody tr:nth-child(odd) td{background:var(--stripe)}
table.summary{width:auto;min-width:420px}
table.summary th{width:16em}

.footer{text-align:center;color:var(--muted);font-size:.85rem;margin:22px auto 10px auto}

.pill{display:inline-block;padding:1px 9px;border-radius:10px;font-weight:600;white-space:nowrap}
.pill.xs{font-size:.78rem}
.pill.ok{background:#dcfce7;color:#166534}
.pill.warn{background:#fef3c7;color:#92400e}
.pill.crit{background:#fee2e2;color:#991b1b}
.pill.soon{background:#dbeafe;color:#1e40af}
.pill.unknown{background:#e5e7eb;color:#374151}

.fh-json > summary{cursor:pointer;font-family:var(--mono);font-size:.85rem;
  max-width:60ch;overflow:hidden;text-overflow:ellipsis;white-space:nowrap}
.fh-json pre{margin:4px 0 0 0;padding:8px 10px;max-height:320px;overflow:auto;
  font-family:var(--mono);font-size:.85rem;background:var(--stripe);border:1px solid var(--border)}
"""

# ---------- header & footer ----------

def _header_html(title: str, subtitle_small: str | None = None) -> str:
    ts = datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    sub_small = f'<p class="sub">{_esc(subtitle_small)}</p>' if subtitle_small else ""
    return f"""
  <div class="header">
    <h1>FleetHound Report</h1>
    <h2>{_esc(title)}</h2>
    {sub_small}
    <p>Generated on {_esc(ts)}</p>
  </div>
"""

def _footer_html() -> str:
    return f"""
<div class="footer">
  <p>Generated by <b>FleetHound</b> — "Every device accounted for."</p>
  <p>&copy; {datetime.datetime.now(datetime.timezone.utc).year} FleetHound</p>
</div>"""


# ---------- table/section renderers ----------

def _render_table(rows: List[Dict[str, Any]], title: str, pill_columns: List[str]) -> str:
    if not rows:
        return f"<div class='card'><h4>{_esc(title)}</h4><p>No data.</p></div>"
    cols = list(rows[0].keys())

    thead = "<tr>" + "".join(f"<th>{_esc(c)}</th>" for c in cols) + "</tr>"

    body_rows = []
    for r in rows:
        tds = []
        for c in cols:
            raw = r.get(c, "")
            if c in pill_columns:
                tds.append(f"<td><span class='pill xs {_pill_class(raw)}'>{_esc(_fmt_cell(raw))}</span></td>")
            else:
                tds.append(f"<td>{_cell_html(raw)}</td>")
        body_rows.append("<tr>" + "".join(tds) + "</tr>")

    return f"""
    <div class="card">
      <h4>{_esc(title)}</h4>
      <div class="tablewrap">
        <table id="tbl-{_slug(title)}">
          <thead>{thead}</thead>
          <tbody>{''.join(body_rows)}</tbody>
        </table>
      </div>
    </div>
    """

def _summary_html(summary: Dict[str, Any]) -> str:
    if not summary:
        return "<p>No summary data available.</p>"
    rows = "\n".join(f"<tr><th>{_esc(k)}</th><td>{_esc(v)}</td></tr>" for k, v in summary.items())
    return f"<table class='summary'>{rows}</table>"

def _details_html(data_dict: Dict[str, Any]) -> str:
    parts = []
    section_titles = data_dict.get("_section_titles") or {}
    pill_columns = data_dict.get("_pill_columns") or []

    # Auto-render list[dict] tables; underscore keys are report metadata
    for k, v in data_dict.items():
        if k == "summary" or k.startswith("_"):
            continue
        if isinstance(v, list) and v and isinstance(v[0], dict):
            parts.append(_render_table(v, _pretty_section_name(k, section_titles), pill_columns))
    return "\n".join(parts)

# ---------- asset collectors (module can inject CSS/JS) ----------

def _collect_module_assets(data: Dict[str, Any]) -> Tuple[str, str, str]:
    """
    Return (full_css, full_js, container_class).
    - _inline_css      : str
    - _inline_js       : str
    - _container_class : str
    """
    css = _base_css()
    if isinstance(data.get("_inline_css"), str):
        css += data["_inline_css"]
    js = data["_inline_js"] if isinstance(data.get("_inline_js"), str) else ""
    container = data.get("_container_class") or ""
    return css, js, container


# ================================================================
# Function: fncRenderHTMLReport
# Purpose  : Build the single-module report document as a string
# ================================================================
def fncRenderHTMLReport(module_name: str, data_dict: Dict[str, Any]) -> str:
    css, js, container_class = _collect_module_assets(data_dict)

    page_h2 = data_dict.get("_title") or f"Module: {module_name}"
    header = _header_html(page_h2, data_dict.get("_subtitle"))
    summary = _summary_html(data_dict.get("summary", {}))
    details = _details_html(data_dict)

    return f"""<!DOCTYPE html>
<html lang="en"><head>
<meta charset="UTF-8"><title>FleetHound Report - {_esc(module_name)}</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>{css}</style></head><body>
{header}
<div class="container{(' ' + _esc(container_class)) if container_class else ''}">
  <h3>Summary</h3>
  {summary}
  {details}
</div>
{_footer_html()}
{f"<script>{js}</script>" if js else ""}
</body></html>"""


# ================================================================
# Function: fncWriteHTMLDocument
# Purpose  : Write a rendered document to disk (UTF-8)
# ================================================================
def fncWriteHTMLDocument(filename: str, html_doc: str) -> None:
    os.makedirs(os.path.dirname(filename) or ".", exist_ok=True)
    with open(filename, "w", encoding="utf-8") as f:
        f.write(html_doc)
    fncPrintMessage(f"HTML report written to {filename}", "success")


# ================================================================
# Function: fncWriteHTMLReport
# Purpose  : Render and write a single-module report
# ================================================================
def fncWriteHTMLReport(filename: str, module_name: str, data_dict: Dict[str, Any]) -> None:
    fncPrintMessage(f"Generating HTML report: {filename}", "info")
    fncWriteHTMLDocument(filename, fncRenderHTMLReport(module_name, data_dict))
