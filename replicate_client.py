import requests
import asyncio
import re
import threading
import logging
from functools import partial
from typing import Any, Callable, Dict, Optional

from errors import ReplicateError, ReplicateModelError

logger = logging.getLogger("ReplicateClient")

DEFAULT_BASE_URL = "https://api.replicate.com/v1"
TERMINAL_STATUSES = ("succeeded", "failed", "canceled")

# owner/name or owner/name:version
MODEL_REF_PATTERN = re.compile(r"^(?P<owner>[^/\s:]+)/(?P<name>[^/\s:]+)(?::(?P<version>[^/\s:]+))?$")


def parse_model_ref(ref: str):
    """Split a model reference into (owner, name, version or None)"""
    match = MODEL_REF_PATTERN.match(ref or "")
    if not match:
        raise ReplicateError(
            f"Invalid model reference '{ref}'. Expected owner/name or owner/name:version"
        )
    return match.group("owner"), match.group("name"), match.group("version")


class ReplicateClient:
    """Replicate API client.

    Each HTTP call runs on its own in the event loop's executor with a session
    owned by that worker thread. Waiting between polls happens on the event loop,
    so a long-running job never holds a worker thread.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        poll_interval: float = 0.5,
        timeout: float = 60,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.session_factory = session_factory
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            self._local.session = session
        return session

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None):
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ReplicateError(f"Replicate API error: {e}") from e
        if response.status_code >= 400:
            raise ReplicateError(
                f"Request to {path} failed with status {response.status_code}: {response.text}"
            )
        return response.json()

    async def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._request, method, path, payload))

    async def create_prediction(self, version: str, model_input: Dict[str, Any]):
        logger.info("Submitting prediction for version %s", version)
        prediction = await self._call("POST", "/predictions", {"version": version, "input": model_input})
        logger.info(f"Created prediction {prediction.get('id')} ({prediction.get('status')})")
        return prediction

    async def create_model_prediction(self, model_ref: str, model_input: Dict[str, Any]):
        owner, name, version = parse_model_ref(model_ref)
        if version:
            return await self.create_prediction(version, model_input)
        logger.info("Submitting prediction for model %s/%s", owner, name)
        prediction = await self._call("POST", f"/models/{owner}/{name}/predictions", {"input": model_input})
        logger.info(f"Created prediction {prediction.get('id')} ({prediction.get('status')})")
        return prediction

    async def get_prediction(self, prediction_id: str):
        return await self._call("GET", f"/predictions/{prediction_id}")

    async def wait(self, prediction: Dict[str, Any], max_attempts: Optional[int] = None):
        """Poll a prediction until it reaches a terminal status.

        Returns the final prediction record. Raises ReplicateModelError when the
        prediction failed or was canceled.
        """
        attempt = 0
        while prediction.get("status") not in TERMINAL_STATUSES:
            if max_attempts is not None and attempt >= max_attempts:
                raise ReplicateError(
                    f"Prediction {prediction.get('id')} didn't complete within {max_attempts} polls"
                )
            await asyncio.sleep(self.poll_interval)
            prediction = await self.get_prediction(prediction["id"])
            attempt += 1

        status = prediction["status"]
        if status == "failed":
            raise ReplicateModelError(
                f"Prediction {prediction.get('id')} failed: {prediction.get('error')}", prediction
            )
        if status == "canceled":
            raise ReplicateModelError(f"Prediction {prediction.get('id')} was canceled", prediction)

        logger.info("Prediction %s succeeded", prediction.get("id"))
        return prediction

    async def predict(self, version: str, model_input: Dict[str, Any]):
        """Create a prediction for a version and wait for it; returns the full record"""
        return await self.wait(await self.create_prediction(version, model_input))

    async def run(self, model_ref: str, model_input: Dict[str, Any]):
        """Run a model and return only its output"""
        prediction = await self.wait(await self.create_model_prediction(model_ref, model_input))
        return prediction.get("output")
