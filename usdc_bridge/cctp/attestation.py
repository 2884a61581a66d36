"""Circle CCTP V2 attestation service client.

Poll Circle's Iris API for burn attestations needed to complete
cross-chain USDC transfers.

After calling ``depositForBurn`` on the source chain, you must wait for
Circle's attestation service to sign the burn event. The attestation goes
through these Iris API statuses:

- **404**: transaction not yet indexed by Circle
- **pending_confirmations**: burn detected, waiting for block finality
- **complete**: attestation signed and ready

There is no built-in timeout: fast transfers attest in seconds, standard
transfers from Ethereum can take 15+ minutes. Stop waiting by cancelling
the :py:class:`~usdc_bridge.cctp.cancel.CancellationToken`.

Example::

    from usdc_bridge.cctp.attestation import AttestationPoller
    from usdc_bridge.cctp.registry import create_testnet_registry
    from usdc_bridge.cctp.session import create_iris_session
    from usdc_bridge.cctp.constants import IRIS_API_SANDBOX_URL

    poller = AttestationPoller(
        create_iris_session(IRIS_API_SANDBOX_URL),
        create_testnet_registry(),
    )
    attestation = poller.wait_for_attestation("0x...", source_chain_id=11155111)

    # Relay attestation.message and attestation.attestation
    # to receiveMessage() on the destination chain
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable

import requests

from usdc_bridge.cctp.cancel import CancellationToken
from usdc_bridge.cctp.errors import AttestationTransportFailed
from usdc_bridge.cctp.registry import ChainRegistry
from usdc_bridge.cctp.session import IrisSession

logger = logging.getLogger(__name__)

#: HTTP 404 status code indicating resource not found
HTTP_NOT_FOUND = 404

#: Seconds between polls
DEFAULT_POLL_INTERVAL = 5.0

#: Placeholder Iris returns in the ``attestation`` field before signing
PENDING_ATTESTATION = "PENDING"

#: Callback receiving ``(phase, attempt)`` on every poll
PhaseCallback = Callable[[str, int], None]


class AttestationStatus(enum.Enum):
    """Attestation readiness."""

    pending = "pending"

    complete = "complete"


@dataclass(slots=True, frozen=True)
class Attestation:
    """Attestation data for a CCTP burn event.

    Contains the signed message and attestation needed to call
    ``receiveMessage`` on the destination chain's MessageTransmitterV2.
    """

    #: The CCTP message bytes to relay to the destination chain
    message: bytes

    #: The signed attestation bytes from Circle's Iris service
    attestation: bytes

    #: Status from Iris API
    status: AttestationStatus = AttestationStatus.complete


def build_messages_url(api_url: str, source_domain: int, transaction_hash: str) -> str:
    """Iris ``/v2/messages`` lookup URL for a burn transaction."""
    return f"{api_url}/v2/messages/{source_domain}?transactionHash={transaction_hash}"


def parse_hex(value: str) -> bytes:
    """Decode ``0x``-prefixed or bare hex from an Iris response."""
    return bytes.fromhex(value.removeprefix("0x"))


class AttestationPoller:
    """Poll the Iris API until a burn is attested.

    - HTTP 404 means "not indexed yet" and polling continues
    - any other HTTP or network error raises
      :py:class:`~usdc_bridge.cctp.errors.AttestationTransportFailed` immediately
    - a first message with status ``complete`` ends polling
    - anything else, including an empty ``messages`` list, polls again
    """

    def __init__(
        self,
        session: IrisSession,
        registry: ChainRegistry,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] | None = None,
    ):
        """
        :param session:
            Iris session, see :py:func:`~usdc_bridge.cctp.session.create_iris_session`.

        :param registry:
            Used to translate the source chain id to its CCTP domain.

        :param poll_interval:
            Seconds between polling attempts.

        :param sleep:
            Replace the cancellable sleep between polls, e.g. in tests.
            The cancellation token is still checked around every sleep.
        """
        self.session = session
        self.registry = registry
        self.poll_interval = poll_interval
        self.sleep = sleep

    def __repr__(self) -> str:
        return f"<AttestationPoller api_url={self.session.api_url!r} interval={self.poll_interval}>"

    def _wait(self, cancel_token: CancellationToken):
        if self.sleep is None:
            cancel_token.sleep(self.poll_interval)
        else:
            cancel_token.raise_if_cancelled()
            self.sleep(self.poll_interval)
            cancel_token.raise_if_cancelled()

    def _fetch(self, url: str) -> requests.Response:
        try:
            return self.session.get(url, timeout=self.session.timeout)
        except requests.RequestException as e:
            raise AttestationTransportFailed(f"Could not reach Iris API at {url}: {e}") from e

    def wait_for_attestation(
        self,
        burn_tx_hash: str,
        source_chain_id: int,
        cancel_token: CancellationToken | None = None,
        on_phase_change: PhaseCallback | None = None,
    ) -> Attestation:
        """Poll until the attestation for a burn is complete.

        :param burn_tx_hash:
            Transaction hash of the ``depositForBurn`` call, or the
            transaction signature on Solana.

        :param source_chain_id:
            Chain the burn happened on.

        :param cancel_token:
            Cancel to stop polling.

        :param on_phase_change:
            Optional callback invoked on every poll attempt.
            Receives ``(phase, attempt)`` where *phase* is
            ``"waiting_for_indexing"``, the Iris status string
            (e.g. ``"pending_confirmations"``) or ``"complete"``
            and *attempt* is the 1-based poll count.

        :return:
            :py:class:`Attestation` with message and attestation bytes.

        :raise AttestationTransportFailed:
            Iris API returned a non-404 error or could not be reached.

        :raise TransferCancelled:
            Token was cancelled while waiting.
        """
        if cancel_token is None:
            cancel_token = CancellationToken()

        descriptor = self.registry.descriptor_for(source_chain_id)
        source_domain = descriptor.bridge_domain

        # Iris requires 0x-prefixed EVM transaction hashes, Solana signatures are base58
        if not descriptor.is_program_chain and not burn_tx_hash.startswith("0x"):
            burn_tx_hash = f"0x{burn_tx_hash}"

        url = build_messages_url(self.session.api_url, source_domain, burn_tx_hash)
        logger.info("Waiting for CCTP attestation on %s (domain %d): tx=%s\n  Iris API: %s", descriptor.name, source_domain, burn_tx_hash, url)

        attempt = 0

        def _notify(phase: str):
            if on_phase_change is not None:
                on_phase_change(phase, attempt)

        while True:
            cancel_token.raise_if_cancelled()

            attempt += 1
            # First poll at INFO so the user sees polling started, the rest at DEBUG
            log_level = logging.INFO if attempt == 1 else logging.DEBUG
            logger.log(log_level, "Polling CCTP attestation: %s, tx=%s, attempt=%d", descriptor.name, burn_tx_hash, attempt)

            response = self._fetch(url)

            if response.status_code == HTTP_NOT_FOUND:
                logger.debug("Attestation not yet indexed (404) for %s, retrying...", descriptor.name)
                _notify("waiting_for_indexing")
                self._wait(cancel_token)
                continue

            try:
                response.raise_for_status()
                data = response.json()
            except (requests.HTTPError, ValueError) as e:
                raise AttestationTransportFailed(f"Iris API error for tx {burn_tx_hash} on {descriptor.name}: {e}") from e

            if not isinstance(data, dict):
                raise AttestationTransportFailed(f"Iris API returned {type(data).__name__} instead of an object for tx {burn_tx_hash}")

            messages = data.get("messages") or []
            if not isinstance(messages, list):
                raise AttestationTransportFailed(f"Iris API returned malformed messages for tx {burn_tx_hash}: {messages!r}")

            status = None

            if messages:
                msg = messages[0]
                if not isinstance(msg, dict):
                    raise AttestationTransportFailed(f"Iris API returned malformed message entry for tx {burn_tx_hash}: {msg!r}")
                status = msg.get("status")
                attestation_hex = msg.get("attestation")

                if status == AttestationStatus.complete.value and attestation_hex and attestation_hex != PENDING_ATTESTATION:
                    message_hex = msg.get("message")
                    if not isinstance(message_hex, str) or not isinstance(attestation_hex, str):
                        raise AttestationTransportFailed(f"Iris API returned a complete status without message and attestation hex for tx {burn_tx_hash}")
                    logger.info("Attestation complete for %s after %d attempts: tx=%s", descriptor.name, attempt, burn_tx_hash)
                    try:
                        attestation = Attestation(
                            message=parse_hex(message_hex),
                            attestation=parse_hex(attestation_hex),
                            status=AttestationStatus.complete,
                        )
                    except ValueError as e:
                        raise AttestationTransportFailed(f"Iris API returned malformed attestation for tx {burn_tx_hash}: {e}") from e
                    _notify("complete")
                    return attestation

            logger.debug("Attestation status for %s: %s (waiting for 'complete')", descriptor.name, status)
            _notify(status or AttestationStatus.pending.value)
            self._wait(cancel_token)
