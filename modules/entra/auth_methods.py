# ================================================================
# File     : modules/entra/auth_methods.py
# Purpose  : Authentication-method posture for the members of one
#            Entra group (strong / weak / none, stale usage).
# Output   : data["users"] (one row per member), summary counts
# Notes    : Per-user method lookups run one at a time; a failed
#            lookup marks that user "Unknown" and the run carries on.
# ================================================================

import re
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

from core.utils import fncPrintMessage, fncNewRunId, fncToTable
from core.reporting import fncWriteHTMLReport

NEEDS_GRAPH = True

REQUIRED_PERMS = [
    "GroupMember.Read.All",
    "UserAuthenticationMethod.Read.All",
    "AuditLog.Read.All",
]

_GUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

METHOD_LABELS = {
    "#microsoft.graph.microsoftAuthenticatorAuthenticationMethod": "Authenticator",
    "#microsoft.graph.fido2AuthenticationMethod": "FIDO2",
    "#microsoft.graph.windowsHelloForBusinessAuthenticationMethod": "Windows Hello",
    "#microsoft.graph.softwareOathAuthenticationMethod": "Software OATH",
    "#microsoft.graph.platformCredentialAuthenticationMethod": "Platform Credential",
    "#microsoft.graph.phoneAuthenticationMethod": "Phone",
    "#microsoft.graph.emailAuthenticationMethod": "Email",
    "#microsoft.graph.temporaryAccessPassAuthenticationMethod": "Temporary Access Pass",
    "#microsoft.graph.passwordAuthenticationMethod": "Password",
}
STRONG_METHODS = {"Authenticator", "FIDO2", "Windows Hello", "Software OATH", "Platform Credential"}
WEAK_METHODS = {"Phone", "Email"}

AUTH_METHODS_CSS = r"""
.auth-methods table thead th{ position:sticky; top:0; z-index:2 }
.auth-methods .am-toolbar{display:flex;gap:10px;align-items:center;margin:6px 2px 0 2px;flex-wrap:wrap}
.auth-methods .am-toolbar input[type="search"]{
  padding:6px 10px;border-radius:999px;border:1px solid var(--border);
  background:var(--card);color:var(--text);min-width:240px;outline:none
}
"""

AUTH_METHODS_JS = r"""
(function(){
  const tbl = document.querySelector('.auth-methods #tbl-users');
  if(!tbl) return;
  const bar = document.createElement('div');
  bar.className = 'am-toolbar';
  bar.innerHTML = '<input type="search" placeholder="Search users…" aria-label="Search users">';
  tbl.closest('.card').insertBefore(bar, tbl.closest('.tablewrap'));
  const search = bar.querySelector('input');
  search.addEventListener('input', () => {
    const q = search.value.toLowerCase();
    Array.from(tbl.tBodies[0].rows).forEach(tr => {
      tr.style.display = !q || tr.textContent.toLowerCase().includes(q) ? '' : 'none';
    });
  });
})();
"""


# ================================================================
# Helper Functions
# ================================================================

def _parse_dt(val) -> Optional[datetime]:
    if not val:
        return None
    try:
        dt = datetime.fromisoformat(str(val).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def fncMethodLabel(method: Dict[str, Any]) -> str:
    odata = method.get("@odata.type") or ""
    return METHOD_LABELS.get(odata, odata.rsplit(".", 1)[-1] or "Unknown")


# ================================================================
# Function: fncClassifyPosture
# Purpose : Strong if any phishing-resistant/app method, Weak if only
#           phone/email, None if only a password
# ================================================================
def fncClassifyPosture(labels: List[str]) -> str:
    present = set(labels)
    if present & STRONG_METHODS:
        return "Strong"
    if present & WEAK_METHODS:
        return "Weak"
    return "None"


# ================================================================
# Function: fncStaleness
# Purpose : "stale" when the newest non-password use is older than
#           stale_days, "unknown" when no method reports usage
# ================================================================
def fncStaleness(methods: List[Dict[str, Any]], stale_days: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    last_used = [
        _parse_dt(m.get("lastUsedDateTime"))
        for m in methods
        if fncMethodLabel(m) != "Password"
    ]
    last_used = [d for d in last_used if d]
    if not last_used:
        return {"lastUsed": "", "stale": "unknown"}
    newest = max(last_used)
    stale = newest < now - timedelta(days=stale_days)
    return {"lastUsed": newest.isoformat(), "stale": "stale" if stale else "ok"}


# ================================================================
# Function: fncResolveGroup
# Purpose : Accept a group object id or an exact displayName
# ================================================================
def fncResolveGroup(client, group: str) -> Dict[str, Any]:
    group = (group or "").strip()
    if not group:
        raise ValueError("A group id or display name is required (--group)")
    if _GUID_RE.match(group):
        return client.get(f"groups/{group}?$select=id,displayName")

    escaped = group.replace("'", "''")
    matches = client.get_all(f"groups?$filter=displayName eq '{escaped}'&$select=id,displayName")
    if not matches:
        raise ValueError(f"No group named '{group}'")
    if len(matches) > 1:
        raise ValueError(f"{len(matches)} groups are named '{group}'; pass the object id instead")
    return matches[0]


# ================================================================
# Function: fncBuildUserRow
# Purpose : One report row from a member, its methods and its
#           registration details (methods=None means lookup failed)
# ================================================================
def fncBuildUserRow(user: Dict[str, Any], methods: Optional[List[Dict[str, Any]]],
                    registration: Dict[str, Any], stale_days: int,
                    now: Optional[datetime] = None) -> Dict[str, Any]:
    row = {
        "displayName": user.get("displayName") or "",
        "userPrincipalName": user.get("userPrincipalName") or "",
        "accountEnabled": user.get("accountEnabled"),
        "posture": "Unknown",
        "methods": "",
        "defaultMfaMethod": registration.get("defaultMfaMethod") or "",
        "isMfaRegistered": registration.get("isMfaRegistered"),
        "lastUsed": "",
        "stale": "unknown",
    }
    if methods is None:
        return row

    labels = sorted({fncMethodLabel(m) for m in methods})
    row["posture"] = fncClassifyPosture(labels)
    row["methods"] = ", ".join(labels)
    row.update(fncStaleness(methods, stale_days, now))
    return row


def _summarise(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    def count(field, value):
        return sum(1 for r in rows if r.get(field) == value)
    return {
        "Members": len(rows),
        "Strong": count("posture", "Strong"),
        "Weak": count("posture", "Weak"),
        "None": count("posture", "None"),
        "Unknown (lookup failed)": count("posture", "Unknown"),
        "Stale": count("stale", "stale"),
    }


# ================================================================
# Main Function
# ================================================================
def run(client, args, cfg: dict) -> Dict[str, Any]:
    run_id = fncNewRunId("authmethods")
    fncPrintMessage(f"Running Authentication Method Posture (run={run_id})", "info")

    stale_days = getattr(args, "stale_days", None) or (cfg.get("reports") or {}).get("stale_days") or 90
    group = fncResolveGroup(client, getattr(args, "group", None))
    fncPrintMessage(f"Group: {group.get('displayName')} ({group.get('id')})", "info")

    members = client.get_all(
        f"groups/{group['id']}/transitiveMembers/microsoft.graph.user"
        "?$select=id,displayName,userPrincipalName,accountEnabled"
    )
    fncPrintMessage(f"{len(members)} user member(s)", "info")

    registrations = {
        r.get("id"): r for r in client.get_all("reports/authenticationMethods/userRegistrationDetails")
    }

    rows: List[Dict[str, Any]] = []
    for user in members:
        try:
            methods = client.get_all(f"users/{user['id']}/authentication/methods")
        except Exception as ex:
            fncPrintMessage(f"Method lookup failed for {user.get('userPrincipalName')}: {ex}", "warn")
            methods = None
        rows.append(fncBuildUserRow(user, methods, registrations.get(user.get("id"), {}), int(stale_days)))

    order = {"None": 0, "Weak": 1, "Unknown": 2, "Strong": 3}
    rows.sort(key=lambda r: (order.get(r["posture"], 9), r["userPrincipalName"].lower()))

    summary = _summarise(rows)
    print(fncToTable([{"Field": k, "Value": v} for k, v in summary.items()], headers=["Field", "Value"]))
    weak = [r for r in rows if r["posture"] in ("None", "Weak")]
    if weak:
        fncPrintMessage("Members without a strong method (top 25)", "warn")
        print(fncToTable(weak, headers=["userPrincipalName", "posture", "methods", "stale"], max_rows=25))

    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {"Group": group.get("displayName"), "Stale threshold (days)": stale_days, **summary},
        "users": rows,
        "_title": "Authentication Method Posture",
        "_subtitle": f"Members of {group.get('displayName')}",
        "_pill_columns": ["posture", "stale"],
        "_container_class": "auth-methods",
        "_inline_css": AUTH_METHODS_CSS,
        "_inline_js": AUTH_METHODS_JS,
    }

    if getattr(args, "html", None):
        path = args.html if args.html.endswith(".html") else args.html + ".html"
        fncWriteHTMLReport(path, "auth_methods", data)

    fncPrintMessage("Authentication Method Posture module complete.", "success")
    return data
