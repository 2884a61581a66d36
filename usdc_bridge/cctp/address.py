"""Address translation between chain families.

CCTP messages carry every address as ``bytes32``:

- EVM addresses are 20 bytes, left padded with zeros
- Solana public keys are already 32 bytes, stored raw (not base58)

Malformed input raises :py:class:`~usdc_bridge.cctp.errors.InvalidAddressFormat`;
nothing is silently truncated or padded.
"""

import base58
from eth_typing import HexAddress
from eth_utils import to_checksum_address

from usdc_bridge.cctp.errors import InvalidAddressFormat

#: EVM address length in bytes
EVM_ADDRESS_LENGTH = 20

#: CCTP ``bytes32`` address field length
BYTES32_LENGTH = 32


def _decode_hex(value: str) -> bytes:
    hex_str = value.removeprefix("0x").removeprefix("0X")
    if len(hex_str) % 2 != 0:
        raise InvalidAddressFormat(f"Invalid hex '{value}': odd number of hex characters ({len(hex_str)})")
    try:
        return bytes.fromhex(hex_str)
    except ValueError as e:
        raise InvalidAddressFormat(f"Invalid hex '{value}': {e}") from e


def pad_address_to_bytes32(address: str) -> bytes:
    """Convert an EVM address to a CCTP ``bytes32`` field.

    :param address:
        ``0x``-prefixed or bare 40 hex character address.

    :return:
        32 bytes, address in the low 20 bytes.

    :raise InvalidAddressFormat:
        Not hex, or not exactly 20 bytes.
    """
    raw = _decode_hex(address)
    if len(raw) != EVM_ADDRESS_LENGTH:
        raise InvalidAddressFormat(f"Invalid EVM address '{address}': expected {EVM_ADDRESS_LENGTH} bytes, got {len(raw)}")
    return raw.rjust(BYTES32_LENGTH, b"\x00")


def unpad_bytes32_to_address(value: bytes | str) -> HexAddress:
    """Convert a CCTP ``bytes32`` field back to an EVM address.

    :param value:
        Raw 32 bytes or their hex encoding.

    :return:
        Checksummed address.

    :raise InvalidAddressFormat:
        Not 32 bytes, or the upper 12 bytes are not zero.
    """
    raw = _decode_hex(value) if isinstance(value, str) else bytes(value)
    if len(raw) != BYTES32_LENGTH:
        raise InvalidAddressFormat(f"Invalid bytes32 address: expected {BYTES32_LENGTH} bytes, got {len(raw)}")
    padding, address = raw[:-EVM_ADDRESS_LENGTH], raw[-EVM_ADDRESS_LENGTH:]
    if any(padding):
        raise InvalidAddressFormat(f"bytes32 value 0x{raw.hex()} does not hold an EVM address, padding is not zero")
    return HexAddress(to_checksum_address(address))


def solana_address_to_bytes32(address: str) -> bytes:
    """Decode a base58 Solana public key to the raw ``bytes32`` used in CCTP messages.

    :raise InvalidAddressFormat:
        Not base58, or does not decode to 32 bytes.
    """
    try:
        raw = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressFormat(f"Invalid Solana address '{address}': {e}") from e
    if len(raw) != BYTES32_LENGTH:
        raise InvalidAddressFormat(f"Invalid Solana address '{address}': expected {BYTES32_LENGTH} bytes, got {len(raw)}")
    return raw


def bytes32_to_solana_address(value: bytes) -> str:
    """Encode a raw ``bytes32`` as a base58 Solana public key."""
    if len(value) != BYTES32_LENGTH:
        raise InvalidAddressFormat(f"Invalid bytes32 value: expected {BYTES32_LENGTH} bytes, got {len(value)}")
    return base58.b58encode(bytes(value)).decode("ascii")


def bytes32_to_hex(value: bytes) -> str:
    """Hex encode a ``bytes32`` for EVM message fields and logs."""
    if len(value) != BYTES32_LENGTH:
        raise InvalidAddressFormat(f"Invalid bytes32 value: expected {BYTES32_LENGTH} bytes, got {len(value)}")
    return "0x" + bytes(value).hex()
