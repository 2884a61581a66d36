"""One-shot CCTP transfer status checks.

Look up what Iris knows about a burn without waiting: useful for
checking on a transfer that was interrupted, or from a status script.
Blocking waits belong to :py:class:`~usdc_bridge.cctp.attestation.AttestationPoller`.

Status progresses as:

1. **404 Not Found**: burn transaction not yet indexed by Iris
2. **pending_confirmations**: burn detected, awaiting block finality
3. **complete**: attestation signed, ready for ``receiveMessage()``

The ``delayReason`` field explains holds on fast transfers:

- ``insufficient_fee``: Fast Transfer fee too low
- ``amount_above_max``: exceeds single-transfer cap
- ``insufficient_allowance_available``: Fast Transfer allowance exhausted

Example::

    from usdc_bridge.cctp.monitor import fetch_transfer_status
    from usdc_bridge.cctp.session import create_iris_session

    status = fetch_transfer_status(create_iris_session(), source_domain=3, transaction_hash="0xabc...")
    if status and status.is_complete:
        print("Transfer ready for mint")
"""

import logging
from dataclasses import dataclass

from usdc_bridge.cctp.attestation import PENDING_ATTESTATION, Attestation, build_messages_url, parse_hex
from usdc_bridge.cctp.message import BurnMessageBody, CCTPMessage, decode_burn_message_body, decode_message
from usdc_bridge.cctp.session import IrisSession

logger = logging.getLogger(__name__)

#: HTTP 404 status code indicating resource not found
HTTP_NOT_FOUND = 404


@dataclass(slots=True)
class CCTPTransferStatus:
    """Status of a CCTP transfer as reported by ``/v2/messages/{sourceDomainId}``."""

    #: Transfer status: ``"complete"`` or ``"pending_confirmations"``
    status: str

    #: CCTP source domain ID
    source_domain: int

    #: Transaction hash of the burn on the source chain
    transaction_hash: str

    #: Signed attestation bytes, or ``None`` if not yet available
    attestation: bytes | None

    #: Raw CCTP message bytes, or ``None`` if not yet available
    message: bytes | None

    #: Reason for delay, or ``None`` if no delay
    delay_reason: str | None = None

    #: CCTP protocol version
    cctp_version: int | None = None

    @property
    def is_complete(self) -> bool:
        """Whether the attestation is signed and ready for minting."""
        return self.status == "complete" and self.attestation is not None

    @property
    def is_pending(self) -> bool:
        return self.status == "pending_confirmations"

    @property
    def is_delayed(self) -> bool:
        return self.delay_reason is not None

    @property
    def decoded_message(self) -> CCTPMessage | None:
        """Message header, once Iris has the message."""
        if self.message is None:
            return None
        return decode_message(self.message)

    @property
    def burn_message(self) -> BurnMessageBody | None:
        """Burn details: amount, mint recipient and fees."""
        decoded = self.decoded_message
        if decoded is None:
            return None
        return decode_burn_message_body(decoded.body)

    def to_attestation(self) -> Attestation:
        """Use a complete status to mint."""
        assert self.is_complete, f"Transfer {self.transaction_hash} is not complete: {self.status}"
        return Attestation(message=self.message, attestation=self.attestation)


def fetch_transfer_status(
    session: IrisSession,
    source_domain: int,
    transaction_hash: str,
    program_chain: bool = False,
) -> CCTPTransferStatus | None:
    """One-shot check of a CCTP transfer's status.

    Does not block or retry.

    :param session:
        Iris session.

    :param source_domain:
        CCTP domain ID of the source chain (e.g. 3 for Arbitrum).

    :param transaction_hash:
        Burn transaction hash, or signature on Solana.

    :param program_chain:
        Source is Solana, do not ``0x`` prefix the signature.

    :return:
        :class:`CCTPTransferStatus` or ``None`` if not yet indexed.

    :raises requests.HTTPError:
        If the API returns an error other than 404.
    """
    if not program_chain and not transaction_hash.startswith("0x"):
        transaction_hash = f"0x{transaction_hash}"

    url = build_messages_url(session.api_url, source_domain, transaction_hash)
    response = session.get(url, timeout=session.timeout)

    if response.status_code == HTTP_NOT_FOUND:
        logger.debug("Transfer %s on domain %d not indexed yet", transaction_hash, source_domain)
        return None

    response.raise_for_status()

    messages = response.json().get("messages", [])
    if not messages:
        return None

    return _parse_transfer_status(messages[0], source_domain, transaction_hash)


def _parse_transfer_status(
    msg: dict,
    source_domain: int,
    transaction_hash: str,
) -> CCTPTransferStatus:
    attestation_hex = msg.get("attestation")
    message_hex = msg.get("message", "")

    attestation_bytes = None
    if attestation_hex and attestation_hex != PENDING_ATTESTATION:
        attestation_bytes = parse_hex(attestation_hex)

    message_bytes = None
    if message_hex and message_hex != "0x":
        message_bytes = parse_hex(message_hex)

    return CCTPTransferStatus(
        status=msg.get("status", ""),
        source_domain=source_domain,
        transaction_hash=transaction_hash,
        attestation=attestation_bytes,
        message=message_bytes,
        delay_reason=msg.get("delayReason"),
        cctp_version=msg.get("cctpVersion"),
    )
