from __future__ import annotations

import http.client
import json
import logging
import uuid
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request, urlopen

from app.schemas.protocol import SetupProtocol


class BackendApiError(RuntimeError):
    def __init__(self, *, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Backend API error {status_code}: {detail}")


class BackendClient:
    """JSON-RPC client for the backend that archives setup protocols."""

    def __init__(self, *, base_url: str, rpc_path: str = "jsonrpc", timeout_seconds: float = 20.0):
        self._url = urljoin(base_url.rstrip("/") + "/", rpc_path.lstrip("/"))
        self._timeout_seconds = timeout_seconds
        self._logger = logging.getLogger("app.backend_client")

    def submit_setup_protocol(self, protocol: SetupProtocol) -> str:
        result = self._call("submitSetupProtocol", {"protocol": protocol.to_wire()})
        protocol_id = result.get("setupProtocolId") if isinstance(result, dict) else None
        if protocol_id in (None, ""):
            raise BackendApiError(status_code=502, detail="submitSetupProtocol returned no setupProtocolId")
        self._logger.info("setup protocol submitted fems=%s protocol_id=%s", protocol.fems.id, protocol_id)
        return str(protocol_id)

    def _call(self, method: str, params: dict[str, Any]) -> Any:
        request_id = str(uuid.uuid4())
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        status_code, content_type, body = self._request_raw(payload)
        if status_code not in (200, 201):
            raise BackendApiError(status_code=status_code, detail=body or "Unexpected backend response")
        if "application/json" not in content_type.lower():
            raise BackendApiError(status_code=502, detail="Backend response is not JSON")
        try:
            decoded = json.loads(body) if body else {}
        except json.JSONDecodeError as exc:
            raise BackendApiError(status_code=502, detail=f"Invalid backend JSON response: {exc}") from exc
        if not isinstance(decoded, dict):
            raise BackendApiError(status_code=502, detail="Backend JSON-RPC response is not an object")

        error = decoded.get("error")
        if isinstance(error, dict):
            raise BackendApiError(
                status_code=502,
                detail=f"{method} failed code={error.get('code')} message={error.get('message')}",
            )
        return decoded.get("result")

    def _request_raw(self, payload: dict[str, Any]) -> tuple[int, str, str]:
        request = Request(
            url=self._url,
            method="POST",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                body = response.read().decode("utf-8", errors="replace")
                return response.status, response.headers.get("content-type", ""), body
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise BackendApiError(status_code=exc.code, detail=detail)
        except URLError as exc:
            raise BackendApiError(status_code=503, detail=str(exc))
        except TimeoutError as exc:
            raise BackendApiError(status_code=504, detail=str(exc))
        except (http.client.HTTPException, OSError) as exc:
            raise BackendApiError(status_code=502, detail=str(exc) or type(exc).__name__) from exc
