from dataclasses import dataclass, field

from feedstr.main.exceptions import RelayException, RelayRejectedException
from feedstr.main.logging import get_logger
from feedstr.nostr.relay_client import RelayClient
from feedstr.nostr.signed_message import SignedMessage

logger = get_logger(__name__)


@dataclass
class PublishReport:
    delivered: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def any_delivered(self) -> bool:
        return bool(self.delivered)


class EventPublisher:
    """Best-effort fan-out of signed events to the configured relays.

    Relays are tried one after another, each with its own timeout. A relay
    that fails is logged and skipped; nothing is retried or queued.
    """

    def __init__(self, relay_client: RelayClient, relays: list[str], dry_run: bool = False):
        self.relay_client = relay_client
        self.relays = list(relays)
        self.dry_run = dry_run

    async def publish(self, message: SignedMessage) -> PublishReport:
        if self.dry_run:
            logger.info(
                f"Dry-run: would publish event {message.to_json()}",
                extra={"event_id": message.id, "kind": message.kind},
            )
            return PublishReport(dry_run=True)

        report = PublishReport()
        for relay in self.relays:
            try:
                await self.relay_client.send(relay, message)
            except RelayRejectedException as exc:
                logger.warning(
                    f"Relay rejected event {message.id}: {exc}",
                    extra={"relay": relay, "event_id": message.id},
                )
                report.failed[relay] = str(exc)
            except RelayException as exc:
                logger.warning(
                    f"Failed to publish event {message.id}: {exc}",
                    extra={"relay": relay, "event_id": message.id},
                )
                report.failed[relay] = str(exc)
            except Exception as exc:
                logger.exception(
                    "Unexpected error publishing event",
                    extra={"relay": relay, "event_id": message.id},
                )
                report.failed[relay] = str(exc) or exc.__class__.__name__
            else:
                report.delivered.append(relay)

        logger.debug(
            f"Published event {message.id} to {len(report.delivered)}/{len(self.relays)} relays",
            extra={"event_id": message.id, "kind": message.kind},
        )
        return report
