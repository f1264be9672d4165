# ================================================================
# File     : core/device_report.py
# Purpose  : Render the Autopilot / Intune / Entra inventory as one
#            self-contained HTML document: 13-column table, filter
#            controls and the embedded table controller script.
# Notes    : Expects ProjectedRow values already HTML-escaped.
# ================================================================

import json
from typing import Dict, Iterable, List, Sequence

from core.models import COLUMNS, ReconciledRow, STATUS_ENROLLED, STATUS_NOT_ENROLLED
from core.projector import ProjectedRow, fncProjectRow
from core.table_state import ORDER_STORAGE_KEY, VISIBILITY_STORAGE_KEY
from core.reporting import _esc, _base_css, _header_html, _footer_html, fncWriteHTMLDocument
from core.utils import fncPrintMessage

# Columns that get a free-text filter box
FILTER_COLUMNS = ("intuneName", "entraName", "serial", "upn", "userDisplayName", "model", "manufacturer")

DEVICE_TABLE_CSS = r"""
.inventory .controls{display:flex;flex-wrap:wrap;gap:10px;align-items:flex-start;margin:6px 0 10px 0}
.inventory .controls input[type="search"],
.inventory .controls select,
.inventory .col-filters input{
  padding:6px 10px;border-radius:8px;border:1px solid var(--border);
  background:var(--card);color:var(--text);outline:none
}
.inventory .controls input[type="search"]{min-width:260px;border-radius:999px}
.inventory .controls select[multiple]{min-width:180px}
.inventory .btn{
  padding:6px 12px;border:1px solid var(--border);border-radius:999px;
  background:var(--card);color:var(--accent2);cursor:pointer;font-weight:600
}
.inventory .btn.primary{background:linear-gradient(90deg,var(--accent2),var(--accent));color:#fff;border-color:transparent}
.inventory .row-count{margin-left:auto;color:var(--muted);font-weight:600;align-self:center}
.inventory .col-filters{display:grid;grid-template-columns:repeat(auto-fit,minmax(170px,1fr));gap:8px;margin-bottom:8px}
.inventory .col-menu{position:relative}
.inventory .col-menu-panel{
  display:none;position:absolute;z-index:5;top:38px;left:0;min-width:240px;padding:10px 12px;
  background:var(--card);border:1px solid var(--border);border-radius:10px;box-shadow:0 10px 30px rgba(0,0,0,.2)
}
.inventory .col-menu-panel.open{display:block}
.inventory .col-menu-panel label{display:block;padding:2px 0;white-space:nowrap}
.inventory .col-menu-panel .actions{display:flex;gap:6px;margin-bottom:8px}
.inventory .tablewrap{max-height:75vh;overflow:auto}
.inventory table thead th{position:sticky;top:0;z-index:2;cursor:pointer;user-select:none}
.inventory table thead th.drag-over{outline:2px dashed #fff;outline-offset:-4px}
.inventory th.sorted-asc::after{content:" ▲"}
.inventory th.sorted-desc::after{content:" ▼"}
.inventory td.degraded{background:#f59e0b1a}
.inventory .stats{display:flex;gap:18px;flex-wrap:wrap;margin:4px 0 12px 0;color:var(--muted)}
.inventory .stats b{color:var(--text)}
"""

DEVICE_TABLE_JS = r"""
(function () {
  const ORDER_KEY = __ORDER_KEY__;
  const VIS_KEY = __VIS_KEY__;

  const table = document.getElementById('deviceTable');
  if (!table) return;
  const headRow = table.tHead.rows[0];
  const tbody = table.tBodies[0];
  const $ = id => document.getElementById(id);

  const HEADERS = {};
  const LABELS = {};
  const DECLARED = Array.from(headRow.cells).map(th => {
    HEADERS[th.dataset.col] = th;
    LABELS[th.dataset.col] = th.textContent.trim();
    return th.dataset.col;
  });
  const ROWS = Array.from(tbody.rows).map(tr => {
    const cells = {};
    Array.from(tr.cells).forEach(td => { cells[td.dataset.col] = td; });
    return { tr, cells };
  });
  const cellText = (row, key) => (row.cells[key] ? row.cells[key].textContent : '').trim();

  function initialState() {
    const visible = {};
    DECLARED.forEach(k => { visible[k] = true; });
    return {
      order: DECLARED.slice(),
      visible,
      filters: { global: '', status: '', tags: new Set(), columns: {} },
      sort: { key: null, dir: null },
      rowOrder: ROWS.map((_, i) => i)
    };
  }

  // ---- persisted layout ----
  function readJSON(key) {
    try { return JSON.parse(localStorage.getItem(key)); } catch (e) { return null; }
  }
  function loadState() {
    const state = initialState();
    const order = readJSON(ORDER_KEY);
    if (Array.isArray(order) && order.length === DECLARED.length && DECLARED.every(k => order.includes(k))) {
      state.order = order.slice();
    }
    const vis = readJSON(VIS_KEY);
    if (Array.isArray(vis) && vis.length === state.order.length) {
      state.order.forEach((k, i) => { state.visible[k] = vis[i] !== false; });
    }
    return state;
  }
  function persist(state) {
    try {
      localStorage.setItem(ORDER_KEY, JSON.stringify(state.order));
      localStorage.setItem(VIS_KEY, JSON.stringify(state.order.map(k => state.visible[k])));
    } catch (e) { console.warn('Column layout not saved:', e); }
  }
  function forget() {
    try {
      localStorage.removeItem(ORDER_KEY);
      localStorage.removeItem(VIS_KEY);
    } catch (e) { console.warn('Column layout not cleared:', e); }
  }

  // ---- transitions: (state, event) -> new state ----
  const with_ = (state, patch) => Object.assign({}, state, patch);
  const transitions = {
    filter(state, ev) {
      return with_(state, { filters: Object.assign({}, state.filters, ev) });
    },
    sort(state, ev) {
      if (state.sort.key === ev.key) {
        return with_(state, {
          rowOrder: state.rowOrder.slice().reverse(),
          sort: { key: ev.key, dir: state.sort.dir === 'asc' ? 'desc' : 'asc' }
        });
      }
      const text = i => cellText(ROWS[i], ev.key).toLowerCase();
      const rowOrder = state.rowOrder
        .map((i, pos) => [i, pos])
        .sort((a, b) => {
          const x = text(a[0]), y = text(b[0]);
          return x < y ? -1 : x > y ? 1 : a[1] - b[1];
        })
        .map(p => p[0]);
      return with_(state, { rowOrder, sort: { key: ev.key, dir: 'asc' } });
    },
    toggleColumn(state, ev) {
      const visible = Object.assign({}, state.visible);
      visible[ev.key] = !!ev.show;
      return with_(state, { visible });
    },
    setAllColumns(state, ev) {
      const visible = {};
      state.order.forEach(k => { visible[k] = !!ev.show; });
      return with_(state, { visible });
    },
    moveColumn(state, ev) {
      const n = state.order.length;
      if (ev.source === ev.target || ev.source < 0 || ev.target < 0 || ev.source >= n || ev.target >= n) {
        return state;
      }
      const order = state.order.slice();
      const moved = order.splice(ev.source, 1)[0];
      order.splice(ev.target, 0, moved);
      return with_(state, { order });
    },
    reset() {
      return initialState();
    }
  };

  function rowMatches(state, row) {
    const f = state.filters;
    if (f.status && cellText(row, 'enrolled') !== f.status) return false;
    if (f.tags.size && !f.tags.has(cellText(row, 'groupTag'))) return false;
    for (const key of Object.keys(f.columns)) {
      const q = (f.columns[key] || '').toLowerCase();
      if (q && !cellText(row, key).toLowerCase().includes(q)) return false;
    }
    if (f.global) {
      const text = state.order.filter(k => state.visible[k]).map(k => cellText(row, k)).join(' ').toLowerCase();
      if (!text.includes(f.global.toLowerCase())) return false;
    }
    return true;
  }

  function render(state) {
    state.order.forEach(k => {
      const th = HEADERS[k];
      headRow.appendChild(th);
      th.style.display = state.visible[k] ? '' : 'none';
      th.classList.toggle('sorted-asc', state.sort.key === k && state.sort.dir === 'asc');
      th.classList.toggle('sorted-desc', state.sort.key === k && state.sort.dir === 'desc');
    });
    let shown = 0;
    state.rowOrder.forEach(i => {
      const row = ROWS[i];
      state.order.forEach(k => {
        const td = row.cells[k];
        row.tr.appendChild(td);
        td.style.display = state.visible[k] ? '' : 'none';
      });
      const ok = rowMatches(state, row);
      row.tr.style.display = ok ? '' : 'none';
      if (ok) shown++;
      tbody.appendChild(row.tr);
    });
    $('rowCount').textContent = shown + ' of ' + ROWS.length + ' devices';
    document.querySelectorAll('#colMenu input[type="checkbox"]').forEach(cb => {
      cb.checked = !!state.visible[cb.dataset.col];
    });
  }

  let state = loadState();
  function dispatch(type, ev, save) {
    state = transitions[type](state, ev || {});
    if (save) persist(state);
    render(state);
  }

  // ---- export ----
  function exportCsv() {
    const cols = state.order.filter(k => state.visible[k]);
    const quote = v => '"' + String(v).replace(/"/g, '""') + '"';
    const lines = [cols.map(k => quote(LABELS[k])).join(',')];
    state.rowOrder.forEach(i => {
      const row = ROWS[i];
      if (rowMatches(state, row)) lines.push(cols.map(k => quote(cellText(row, k))).join(','));
    });
    const blob = new Blob([lines.join('\n')], { type: 'text/csv;charset=utf-8;' });
    const a = document.createElement('a');
    a.href = URL.createObjectURL(blob);
    a.download = 'DeviceInventory.csv';
    document.body.appendChild(a);
    a.click();
    document.body.removeChild(a);
    URL.revokeObjectURL(a.href);
  }

  // ---- wiring ----
  $('globalSearch').addEventListener('input', e => dispatch('filter', { global: e.target.value }));
  $('statusFilter').addEventListener('change', e => dispatch('filter', { status: e.target.value }));
  $('groupTagFilter').addEventListener('change', e => {
    const tags = new Set(Array.from(e.target.selectedOptions).map(o => o.value));
    dispatch('filter', { tags });
  });
  document.querySelectorAll('.col-filters input').forEach(input => {
    input.addEventListener('input', () => {
      const columns = Object.assign({}, state.filters.columns);
      columns[input.dataset.col] = input.value;
      dispatch('filter', { columns });
    });
  });

  function clearFilterInputs() {
    $('globalSearch').value = '';
    $('statusFilter').value = '';
    Array.from($('groupTagFilter').options).forEach(o => { o.selected = false; });
    document.querySelectorAll('.col-filters input').forEach(i => { i.value = ''; });
  }
  $('clearFilters').addEventListener('click', () => {
    clearFilterInputs();
    dispatch('filter', { global: '', status: '', tags: new Set(), columns: {} });
  });
  $('exportCsv').addEventListener('click', exportCsv);

  $('colMenuBtn').addEventListener('click', () => $('colMenu').classList.toggle('open'));
  document.querySelectorAll('#colMenu input[type="checkbox"]').forEach(cb => {
    cb.addEventListener('change', () => dispatch('toggleColumn', { key: cb.dataset.col, show: cb.checked }, true));
  });
  $('selectAllCols').addEventListener('click', () => dispatch('setAllColumns', { show: true }, true));
  $('deselectAllCols').addEventListener('click', () => dispatch('setAllColumns', { show: false }, true));
  $('resetCols').addEventListener('click', () => {
    forget();
    clearFilterInputs();
    dispatch('reset');
  });

  let dragKey = null;
  DECLARED.forEach(k => {
    const th = HEADERS[k];
    th.addEventListener('click', () => dispatch('sort', { key: k }));
    th.addEventListener('dragstart', e => {
      dragKey = k;
      e.dataTransfer.effectAllowed = 'move';
      e.dataTransfer.setData('text/plain', k);
    });
    th.addEventListener('dragover', e => { e.preventDefault(); th.classList.add('drag-over'); });
    th.addEventListener('dragleave', () => th.classList.remove('drag-over'));
    th.addEventListener('drop', e => {
      e.preventDefault();
      th.classList.remove('drag-over');
      const src = dragKey || e.dataTransfer.getData('text/plain');
      dragKey = null;
      dispatch('moveColumn', { source: state.order.indexOf(src), target: state.order.indexOf(k) }, true);
    });
  });

  render(state);
})();
"""
# Storage keys shared with TableState.persist/restore
DEVICE_TABLE_JS = (
    DEVICE_TABLE_JS
    .replace("__ORDER_KEY__", json.dumps(ORDER_STORAGE_KEY))
    .replace("__VIS_KEY__", json.dumps(VISIBILITY_STORAGE_KEY))
)


# ---------- HTML pieces ----------

def _link(text: str, url: str) -> str:
    if not url:
        return text
    return f'<a href="{url}" target="_blank" rel="noopener">{text}</a>'


def _row_html(p: ProjectedRow) -> str:
    status_cls = "ok" if p.status == STATUS_ENROLLED else "crit"
    user_attr = ' class="degraded" title="Primary user lookup failed"' if p.user_lookup_failed else ""
    cells = [
        ("enrolled", f"<span class='pill xs {status_cls}'>{p.status}</span>", ""),
        ("intuneName", _link(p.intune_name, p.intune_url), ""),
        ("entraName", _link(p.entra_name, p.entra_url), ""),
        ("entraDeviceId", p.entra_device_id, ""),
        ("entraObjectId", p.entra_object_id, ""),
        ("serial", p.serial_number, ""),
        ("upn", p.upn, user_attr),
        ("userDisplayName", p.user_display_name, user_attr),
        ("groupTag", p.group_tag, ""),
        ("model", p.model, ""),
        ("manufacturer", p.manufacturer, ""),
        ("autopilotId", p.autopilot_id, ""),
        ("intuneId", p.intune_id, ""),
    ]
    tds = "".join(f'<td data-col="{key}"{attrs}>{body}</td>' for key, body, attrs in cells)
    return f"<tr>{tds}</tr>"


def _group_tag_options(projected: Sequence[ProjectedRow]) -> str:
    tags = sorted({p.group_tag for p in projected}, key=str.lower)
    return "".join(
        f'<option value="{t}">{t if t else "(no group tag)"}</option>' for t in tags
    )


def _controls_html(projected: Sequence[ProjectedRow]) -> str:
    labels = dict(COLUMNS)
    col_filters = "".join(
        f'<input type="search" data-col="{k}" placeholder="{_esc(labels[k])}…" aria-label="Filter {_esc(labels[k])}">'
        for k in FILTER_COLUMNS
    )
    col_checks = "".join(
        f'<label><input type="checkbox" data-col="{k}" checked> {_esc(label)}</label>'
        for k, label in COLUMNS
    )
    return f"""
  <div class="controls">
    <input type="search" id="globalSearch" placeholder="Search all visible columns…" aria-label="Search">
    <select id="statusFilter" aria-label="Enrollment status">
      <option value="">All devices</option>
      <option value="{STATUS_ENROLLED}">{STATUS_ENROLLED}</option>
      <option value="{STATUS_NOT_ENROLLED}">{STATUS_NOT_ENROLLED}</option>
    </select>
    <select id="groupTagFilter" multiple size="4" aria-label="Group tags">{_group_tag_options(projected)}</select>
    <button class="btn primary" id="exportCsv" type="button">Export CSV</button>
    <button class="btn" id="clearFilters" type="button">Clear Filters</button>
    <div class="col-menu">
      <button class="btn" id="colMenuBtn" type="button">Columns ▾</button>
      <div class="col-menu-panel" id="colMenu">
        <div class="actions">
          <button class="btn" id="selectAllCols" type="button">Select All</button>
          <button class="btn" id="deselectAllCols" type="button">Deselect All</button>
          <button class="btn" id="resetCols" type="button">Reset</button>
        </div>
        {col_checks}
      </div>
    </div>
    <span class="row-count" id="rowCount"></span>
  </div>
  <div class="col-filters">{col_filters}</div>"""


def _stats_html(summary: Dict[str, int]) -> str:
    return '<div class="stats">' + "".join(
        f"<span>{_esc(k)}: <b>{_esc(v)}</b></span>" for k, v in summary.items()
    ) + "</div>"


# ================================================================
# Function: fncInventorySummary
# Purpose  : Headline counts for the header strip and console
# ================================================================
def fncInventorySummary(rows: Sequence[ReconciledRow]) -> Dict[str, int]:
    enrolled = sum(1 for r in rows if r.enrolled)
    return {
        "Autopilot Devices": len(rows),
        "Intune Enrolled": enrolled,
        "Not Enrolled": len(rows) - enrolled,
        "In Entra": sum(1 for r in rows if r.entra_object_id),
        "User Lookups Failed": sum(1 for r in rows if r.user_lookup_failed),
    }


# ================================================================
# Function: fncRenderDeviceReport
# Purpose  : Build the whole inventory document as a string
# Notes    : Zero rows still yields a header-only table
# ================================================================
def fncRenderDeviceReport(rows: Iterable[ReconciledRow], title: str = "Autopilot Device Inventory") -> str:
    rows = list(rows)
    projected: List[ProjectedRow] = [fncProjectRow(r) for r in rows]

    thead = "<tr>" + "".join(
        f'<th data-col="{k}" draggable="true">{_esc(label)}</th>' for k, label in COLUMNS
    ) + "</tr>"
    tbody = "\n".join(_row_html(p) for p in projected)

    header = _header_html(title, "Autopilot ↔ Intune ↔ Entra cross-reference")

    return f"""<!DOCTYPE html>
<html lang="en"><head>
<meta charset="UTF-8"><title>FleetHound - {_esc(title)}</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>{_base_css()}{DEVICE_TABLE_CSS}</style></head><body>
{header}
<div class="container inventory">
  {_stats_html(fncInventorySummary(rows))}
  {_controls_html(projected)}
  <div class="tablewrap">
    <table id="deviceTable">
      <thead>{thead}</thead>
      <tbody>
{tbody}
      </tbody>
    </table>
  </div>
</div>
{_footer_html()}
<script>{DEVICE_TABLE_JS}</script>
</body></html>"""


# ================================================================
# Function: fncWriteDeviceReport
# Purpose  : Render and write the inventory document
# ================================================================
def fncWriteDeviceReport(filename: str, rows: Iterable[ReconciledRow]) -> str:
    fncPrintMessage(f"Generating device inventory report: {filename}", "info")
    html_doc = fncRenderDeviceReport(rows)
    fncWriteHTMLDocument(filename, html_doc)
    return html_doc
