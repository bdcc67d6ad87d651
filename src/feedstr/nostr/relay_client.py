import asyncio
import json

import aiohttp

from feedstr.main.exceptions import RelayException, RelayRejectedException
from feedstr.main.logging import get_logger
from feedstr.nostr.signed_message import SignedMessage

logger = get_logger(__name__)


class RelayClient:
    """Delivers one event to one relay over a short-lived websocket."""

    def __init__(self, client_session_factory, timeout: float):
        self._client_session_factory = client_session_factory
        self.timeout = timeout

    async def send(self, relay: str, message: SignedMessage) -> str:
        """Send ``["EVENT", ...]`` and wait for the matching ``["OK", ...]``.

        Returns the relay's acceptance message.

        Raises:
            RelayRejectedException: The relay answered ``OK`` with accepted=false.
            RelayException: Connection failure, protocol error or timeout.
        """
        try:
            async with asyncio.timeout(self.timeout):
                return await self._exchange(relay, message)
        except TimeoutError as exc:
            raise RelayException(f"Timed out after {self.timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise RelayException(f"Connection failed: {exc}") from exc

    async def _exchange(self, relay: str, message: SignedMessage) -> str:
        session: aiohttp.ClientSession = self._client_session_factory()

        async with session.ws_connect(relay, heartbeat=None) as ws:
            await ws.send_str(json.dumps(["EVENT", message.to_payload()], ensure_ascii=False))

            async for frame in ws:
                if frame.type != aiohttp.WSMsgType.TEXT:
                    if frame.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSE):
                        break
                    continue

                try:
                    reply = json.loads(frame.data)
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON frame from relay", extra={"relay": relay})
                    continue

                if not isinstance(reply, list) or not reply:
                    continue

                if reply[0] == "NOTICE":
                    logger.info(f"Relay notice: {reply[1:]}", extra={"relay": relay})
                    continue

                if reply[0] == "OK" and len(reply) >= 3 and reply[1] == message.id:
                    reason = reply[3] if len(reply) > 3 else ""
                    if not reply[2]:
                        raise RelayRejectedException(reason or "rejected")
                    return reason

        raise RelayException("Connection closed before the relay acknowledged the event")
