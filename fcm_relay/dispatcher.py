import logging
from typing import Optional

from fcm_relay.fcm_client import FcmGateway
from fcm_relay.results import Delivered, DispatchFailed, DispatchResult

logger = logging.getLogger(__name__)


class Dispatcher:
    """Delivers one notification through the push gateway.

    With no gateway the dispatcher runs in mock mode: every call is reported
    as delivered and nothing leaves the process. There is exactly one attempt
    per call.
    """

    def __init__(self, gateway: Optional[FcmGateway] = None):
        self.gateway = gateway

    @property
    def mock(self) -> bool:
        return self.gateway is None

    async def dispatch(self, device_id: str, text: str) -> DispatchResult:
        if self.gateway is None:
            logger.info("fcm_mock_send", extra={"extra": {
                "event": "fcm_mock_send",
                "device_id": device_id,
                "text": text,
            }})
            return Delivered()

        try:
            ok = await self.gateway.send(device_id, text)
        except Exception as e:
            return DispatchFailed.from_exc(e)
        if not ok:
            return DispatchFailed("push gateway returned non-success")
        return Delivered()

    async def aclose(self):
        if self.gateway is not None:
            await self.gateway.aclose()
