# ================================================================
# File     : client.py
# Purpose  : Microsoft Graph read-only client for Intune / Entra
# Notes    : Read-only: GET + pagination. No destructive ops.
#            - Tokens come from the signed-in Azure CLI session or,
#              when app credentials are configured, from MSAL
#            - Proactive refresh if token expires in <5 minutes
#            - One 429 Retry-After sleep and one 401 refresh; nothing else
#              is retried
# ================================================================

import json
import time
import shutil
import subprocess
from datetime import datetime
from typing import Dict, Any, List, Optional

import msal
import requests

from core.utils import fncPrintMessage

GRAPH_ROOT = "https://graph.microsoft.com/v1.0"
GRAPH_RESOURCE = "https://graph.microsoft.com"


class GraphRequestError(Exception):
    """A Graph call returned a non-success status."""

    def __init__(self, status: int, url: str, detail: str = ""):
        self.status = status
        self.url = url
        self.detail = detail
        super().__init__(f"Graph API request failed with status {status}: {url}")


class TokenAcquisitionError(Exception):
    pass


# ---------- Token providers ----------

class AzCliTokenProvider:
    """Borrow a Graph token from the host's `az login` session."""

    def __init__(self, az_path: Optional[str] = None):
        self.az_path = az_path or shutil.which("az") or "az"

    def acquire(self) -> Dict[str, Any]:
        cmd = [self.az_path, "account", "get-access-token",
               "--resource", GRAPH_RESOURCE, "--output", "json"]
        fncPrintMessage("Requesting Graph token from Azure CLI session...", "debug")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as ex:
            raise TokenAcquisitionError("Azure CLI ('az') not found; install it or configure app credentials") from ex

        if result.returncode != 0:
            raise TokenAcquisitionError(
                f"az account get-access-token failed (run 'az login' first): {result.stderr.strip()}"
            )
        try:
            body = json.loads(result.stdout)
        except ValueError as ex:
            raise TokenAcquisitionError("Could not parse Azure CLI token output") from ex

        expires_on = body.get("expires_on")
        if not expires_on and body.get("expiresOn"):
            # older CLI builds only report local time "YYYY-MM-DD HH:MM:SS.ffffff"
            expires_on = datetime.strptime(body["expiresOn"][:19], "%Y-%m-%d %H:%M:%S").timestamp()
        return {"access_token": body["accessToken"], "expires_on": int(expires_on or 0)}


class MsalTokenProvider:
    """App-only token via an MSAL confidential client."""

    def __init__(self, tenant_id: str, client_id: str, client_secret: str,
                 authority: str = "https://login.microsoftonline.com"):
        self.scope = [f"{GRAPH_RESOURCE}/.default"]
        self.app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=f"{authority.rstrip('/')}/{tenant_id}",
        )

    def acquire(self) -> Dict[str, Any]:
        fncPrintMessage("Requesting Microsoft Graph access token (MSAL)...", "debug")
        result = self.app.acquire_token_silent(self.scope, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.scope)
        if "access_token" not in result:
            raise TokenAcquisitionError(
                f"MSAL authentication failed: {result.get('error_description', 'Unknown error')}"
            )
        return result


def _retry_after_seconds(value: Any, default: int = 5) -> int:
    """Retry-After may be delay-seconds or an HTTP date; dates get the default."""
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


class GraphClient:
    def __init__(self, token_provider, session: Optional[requests.Session] = None):
        self.token_provider = token_provider
        self.session = session or requests.Session()

        # token/bookkeeping
        self.token: str = ""
        self._token_expires_on: int = 0  # epoch seconds

    # ---------- Token helpers ----------

    def _set_token(self, result: Dict[str, Any]) -> None:
        """Store token and expiry from a provider result."""
        self.token = result["access_token"]
        try:
            self._token_expires_on = int(result.get("expires_on") or 0)
        except (TypeError, ValueError):
            self._token_expires_on = 0
        if not self._token_expires_on:
            self._token_expires_on = int(time.time()) + int(result.get("expires_in", 3600))

    def _ensure_fresh_token(self) -> None:
        """Proactively refresh token if it expires in <5 minutes."""
        if int(time.time()) >= (self._token_expires_on - 300):
            fncPrintMessage("Refreshing access token...", "debug")
            self._set_token(self.token_provider.acquire())

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    # ---------- HTTP handling ----------

    def _request(self, url: str, params: Optional[Dict[str, Any]] = None, _retried: bool = False) -> Dict[str, Any]:
        self._ensure_fresh_token()
        resp = self.session.get(url, headers=self._auth_headers(), params=params)
        status = resp.status_code

        if 200 <= status < 300:
            return resp.json() if resp.content else {}

        if status == 429 and not _retried:
            retry_after = _retry_after_seconds(resp.headers.get("Retry-After"))
            fncPrintMessage(f"Rate limit hit. Sleeping for {retry_after}s...", "warn")
            time.sleep(retry_after)
            return self._request(url, params, _retried=True)

        if status == 401 and not _retried:
            fncPrintMessage("Access token rejected, attempting one refresh.", "warn")
            self._set_token(self.token_provider.acquire())
            return self._request(url, params, _retried=True)

        fncPrintMessage(f"Graph API Error [{status}] -> {resp.text[:300]}", "debug")
        raise GraphRequestError(status, url, resp.text)

    # ---------- Public API ----------

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Perform a GET request to a Graph endpoint (single page).
        Use get_all for paginated resources.
        """
        url = f"{GRAPH_ROOT}/{endpoint.strip().lstrip('/')}"
        fncPrintMessage(f"GET {url}", "debug")
        return self._request(url, params=params)

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Retrieve all items from a paginated Graph endpoint.
        Follows @odata.nextLink until exhausted and returns the items of every
        page in order. Any page failure raises GraphRequestError.
        Example: client.get_all("devices?$select=id,deviceId,displayName")
        """
        url = f"{GRAPH_ROOT}/{endpoint.strip().lstrip('/')}"
        fncPrintMessage(f"GET (all pages) {url}", "debug")

        data = self._request(url, params=params)
        if not data:
            return []
        if isinstance(data, dict) and "value" not in data:
            return [data]

        items: List[Dict[str, Any]] = list(data.get("value") or [])
        next_link = data.get("@odata.nextLink")

        while next_link:
            fncPrintMessage(f"Following nextLink -> {next_link}", "debug")
            # nextLink already carries the original query string
            page = self._request(next_link)
            items.extend(page.get("value") or [])
            next_link = page.get("@odata.nextLink")

        return items


# ================================================================
# Function: fncBuildGraphClient
# Purpose : Build a GraphClient from the "graph" config block
# Notes   : auth=msal needs tenant/client/secret; anything else uses az
# ================================================================
def fncBuildGraphClient(graph_cfg: Dict[str, Any]) -> GraphClient:
    mode = (graph_cfg.get("auth") or "azcli").lower()
    if mode == "msal":
        missing = [k for k in ("tenant_id", "client_id", "client_secret") if not graph_cfg.get(k)]
        if missing:
            raise TokenAcquisitionError(f"auth=msal but config is missing: {', '.join(missing)}")
        provider = MsalTokenProvider(
            graph_cfg["tenant_id"],
            graph_cfg["client_id"],
            graph_cfg["client_secret"],
            graph_cfg.get("authority") or "https://login.microsoftonline.com",
        )
    else:
        provider = AzCliTokenProvider()

    fncPrintMessage(f"Initialising Microsoft Graph (read-only) client [auth={mode}]...", "info")
    return GraphClient(provider)
