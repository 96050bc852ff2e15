import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class LiveEvent:
    event: str
    data: Dict[str, Any]


class QueueManagerClient:
    def __init__(
        self,
        base_url: str,
        base_path: str = "/queue_manager",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.base_path = base_path.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    def _path(self, path: str) -> str:
        return f"{self.base_path}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Returns the decoded response envelope, including failed ones.
        Transport errors and non-JSON responses are logged and yield None.
        """
        try:
            resp = await self.client.request(method, self._path(path), json=json_body, params=params)
            envelope = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("%s %s failed: %s", method, path, e)
            return None

        if resp.is_error:
            logger.info("%s %s rejected status=%s message=%s", method, path, resp.status_code, envelope.get("message"))
        return envelope

    # --- Metrics ---

    async def metrics(self) -> Optional[Dict[str, Any]]:
        return await self._request("GET", "/metrics")

    async def summary(self) -> Optional[Dict[str, Any]]:
        return await self._request("GET", "/queues/summary")

    async def live(self) -> AsyncIterator[LiveEvent]:
        """Yields parsed server-sent events until the server closes the stream."""
        async with self.client.stream("GET", self._path("/live"), timeout=None) as resp:
            resp.raise_for_status()
            event, data_lines = None, []
            async for line in resp.aiter_lines():
                if line.startswith("event:"):
                    event = line[len("event:"):].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:"):].strip())
                elif not line and data_lines:
                    yield LiveEvent(event or "message", json.loads("\n".join(data_lines)))
                    event, data_lines = None, []
            if data_lines:
                yield LiveEvent(event or "message", json.loads("\n".join(data_lines)))

    # --- Queues ---

    async def pause_all(self) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/queues/pause_all")

    async def resume_all(self) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/queues/resume_all")

    async def pause(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/pause")

    async def resume(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/resume")

    async def block(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/block")

    async def unblock(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/unblock")

    async def clear(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/clear")

    async def delete_queue(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("DELETE", f"/queues/{queue}")

    async def queue_status(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/queues/{queue}/status")

    async def queue_jobs(self, queue: str, page: int = 1, per_page: int = 10) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/queues/{queue}/jobs", params={"page": page, "per_page": per_page})

    async def delete_queue_job(self, queue: str, job_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("DELETE", f"/queues/{queue}/delete_job", json_body={"job_id": job_id})

    async def set_limit(self, queue: str, limit: Any) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/set_limit", json_body={"limit": limit})

    async def remove_limit(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("DELETE", f"/queues/{queue}/remove_limit")

    async def set_process_limit(self, queue: str, limit: Any) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/queues/{queue}/set_process_limit", json_body={"limit": limit})

    async def remove_process_limit(self, queue: str) -> Optional[Dict[str, Any]]:
        return await self._request("DELETE", f"/queues/{queue}/remove_process_limit")

    # --- Job sets ("scheduled", "retries", "dead") ---

    async def list_jobs(
        self, job_set: str, page: int = 1, per_page: int = 25, filter: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if filter:
            params["filter"] = filter
        return await self._request("GET", f"/{job_set}", params=params)

    async def delete_job(self, job_set: str, jid: str) -> Optional[Dict[str, Any]]:
        return await self._request("DELETE", f"/{job_set}/{jid}")

    async def clear_jobs(self, job_set: str, filter: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/{job_set}/clear", json_body={"filter": filter})

    async def enqueue_scheduled(self, jid: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/scheduled/{jid}/enqueue")

    async def retry(self, jid: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/retries/{jid}/retry")

    async def kill(self, jid: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/retries/{jid}/kill")

    async def resurrect(self, jid: str) -> Optional[Dict[str, Any]]:
        return await self._request("POST", f"/dead/{jid}/resurrect")

    async def retry_all(self, filter: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/retries/retry_all", json_body={"filter": filter})

    async def resurrect_all(self, filter: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/dead/resurrect_all", json_body={"filter": filter})

    async def close(self):
        await self.client.aclose()
