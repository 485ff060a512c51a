import httpx
from flask import current_app

from bookshare.errors import DeliveryFailure


class PushService:
    """
    Sends push messages through an HTTP push gateway.

    The gateway receives ``{"token", "notification": {"title", "body"}, "data"}``.
    Without a configured gateway URL push is disabled and ``send`` returns False.
    """

    def __init__(self, gateway_url: str = "", api_key: str = "", timeout: float = 10.0,
                 client: httpx.Client | None = None):
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config):
        return cls(
            gateway_url=config.get("PUSH_GATEWAY_URL", ""),
            api_key=config.get("PUSH_API_KEY", ""),
            timeout=config.get("PUSH_TIMEOUT_SECONDS", 10.0),
        )

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def send(self, token: str, title: str, body: str, data: dict | None = None) -> bool:
        if not self.gateway_url:
            current_app.logger.info("[push] Gateway not configured, push skipped.")
            return False

        payload = {
            "token": token,
            "notification": {"title": title, "body": body},
            # gateways expect string values in the data map
            "data": {k: str(v) for k, v in (data or {}).items() if v is not None},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            r = self.client.post(self.gateway_url, json=payload, headers=headers)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"Push gateway error: {e}") from e
        return True
