"""CCTP V2 message decoding.

The attested message is a packed big-endian structure:

====================  ======  ====================================
Field                 Bytes   Offset
====================  ======  ====================================
version               4       0
sourceDomain          4       4
destinationDomain     4       8
nonce                 32      12
sender                32      44
recipient             32      76
destinationCaller     32      108
minFinalityThreshold  4       140
finalityThresholdExe  4       144
messageBody           n       148
====================  ======  ====================================

For USDC transfers the body is a burn message carrying the burn token,
mint recipient and amount.

- `Message format <https://developers.circle.com/cctp/technical-guide#message-format>`_
"""

from dataclasses import dataclass

#: Length of the fixed V2 message header
MESSAGE_HEADER_LENGTH = 148

#: Length of the fixed part of a V2 burn message body
BURN_MESSAGE_BODY_LENGTH = 228


@dataclass(slots=True, frozen=True)
class CCTPMessage:
    """Decoded CCTP V2 message header."""

    version: int

    #: Domain the USDC was burned on
    source_domain: int

    #: Domain the USDC will be minted on
    destination_domain: int

    #: 32-byte nonce assigned by the attestation service.
    #:
    #: Used for replay protection on the destination chain.
    nonce: bytes

    sender: bytes

    recipient: bytes

    destination_caller: bytes

    min_finality_threshold: int

    finality_threshold_executed: int

    #: Raw message body
    body: bytes


@dataclass(slots=True, frozen=True)
class BurnMessageBody:
    """Decoded V2 burn message body."""

    version: int

    #: Source chain USDC as bytes32
    burn_token: bytes

    #: Who receives the minted USDC, as bytes32
    mint_recipient: bytes

    #: Amount in raw units
    amount: int

    message_sender: bytes

    max_fee: int

    fee_executed: int


def _uint(data: bytes, offset: int, length: int) -> int:
    return int.from_bytes(data[offset : offset + length], "big")


def decode_message(message: bytes) -> CCTPMessage:
    """Decode the header of an attested CCTP V2 message.

    :raise ValueError:
        Message is shorter than the fixed header.
    """
    if len(message) < MESSAGE_HEADER_LENGTH:
        raise ValueError(f"CCTP message too short: {len(message)} bytes, header needs {MESSAGE_HEADER_LENGTH}")

    return CCTPMessage(
        version=_uint(message, 0, 4),
        source_domain=_uint(message, 4, 4),
        destination_domain=_uint(message, 8, 4),
        nonce=bytes(message[12:44]),
        sender=bytes(message[44:76]),
        recipient=bytes(message[76:108]),
        destination_caller=bytes(message[108:140]),
        min_finality_threshold=_uint(message, 140, 4),
        finality_threshold_executed=_uint(message, 144, 4),
        body=bytes(message[MESSAGE_HEADER_LENGTH:]),
    )


def decode_burn_message_body(body: bytes) -> BurnMessageBody:
    """Decode the body of a USDC burn message.

    :raise ValueError:
        Body is shorter than the fixed burn message layout.
    """
    if len(body) < BURN_MESSAGE_BODY_LENGTH:
        raise ValueError(f"Burn message body too short: {len(body)} bytes, needs {BURN_MESSAGE_BODY_LENGTH}")

    return BurnMessageBody(
        version=_uint(body, 0, 4),
        burn_token=bytes(body[4:36]),
        mint_recipient=bytes(body[36:68]),
        amount=_uint(body, 68, 32),
        message_sender=bytes(body[100:132]),
        max_fee=_uint(body, 132, 32),
        fee_executed=_uint(body, 164, 32),
    )
