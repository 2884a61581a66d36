"""Check the attestation status of a CCTP burn.

One-shot lookup against Circle's Iris API. Prints the status and, once
the message is available, the decoded burn.

Environment variables
---------------------
- ``SOURCE_CHAIN_ID``: Chain the burn happened on (required).
- ``TX_HASH``: Burn transaction hash, or signature on Solana (required).
- ``NETWORK``: ``testnet`` (default) or ``mainnet``.
- ``IRIS_API_URL``: Override Circle's attestation API.
- ``LOG_LEVEL``: Logging level (default: ``info``).

Usage::

    SOURCE_CHAIN_ID=11155111 TX_HASH=0x... poetry run python scripts/cctp/check-cctp-transfer.py
"""

import logging
import os

from tabulate import tabulate

from usdc_bridge.cctp.address import bytes32_to_hex
from usdc_bridge.cctp.amount import format_units
from usdc_bridge.cctp.constants import CCTP_DOMAIN_NAMES
from usdc_bridge.cctp.monitor import fetch_transfer_status
from usdc_bridge.cctp.registry import create_mainnet_registry, create_testnet_registry
from usdc_bridge.cctp.session import create_iris_session, get_iris_api_url
from usdc_bridge.utils import setup_console_logging

logger = logging.getLogger(__name__)


def main():
    setup_console_logging(default_log_level="info")

    source_chain_id = os.environ.get("SOURCE_CHAIN_ID")
    assert source_chain_id, "SOURCE_CHAIN_ID environment variable required"
    tx_hash = os.environ.get("TX_HASH")
    assert tx_hash, "TX_HASH environment variable required"

    network = os.environ.get("NETWORK", "testnet").lower()
    assert network in ("mainnet", "testnet"), f"NETWORK must be 'mainnet' or 'testnet', got '{network}'"
    testnet = network == "testnet"

    registry = create_testnet_registry() if testnet else create_mainnet_registry()
    source = registry.descriptor_for(int(source_chain_id))

    api_url = os.environ.get("IRIS_API_URL", get_iris_api_url(testnet))
    session = create_iris_session(api_url)

    print(f"Source: {source.name} (domain {source.bridge_domain})")
    print(f"Burn tx: {tx_hash}")
    print(f"API: {api_url}")

    status = fetch_transfer_status(session, source.bridge_domain, tx_hash, program_chain=source.is_program_chain)
    if status is None:
        print("\nNot indexed by Iris yet")
        return

    rows = [
        ["Status", status.status],
        ["Delay reason", status.delay_reason or "-"],
        ["Attestation", "ready" if status.is_complete else "pending"],
        ["CCTP version", status.cctp_version or "-"],
    ]

    message = status.decoded_message
    if message:
        burn = status.burn_message
        rows += [
            ["Destination", CCTP_DOMAIN_NAMES.get(message.destination_domain, message.destination_domain)],
            ["Nonce", bytes32_to_hex(message.nonce)],
            ["Amount", f"{format_units(burn.amount)} USDC"],
            ["Max fee", f"{format_units(burn.max_fee)} USDC"],
            ["Mint recipient", bytes32_to_hex(burn.mint_recipient)],
            ["Finality threshold", message.min_finality_threshold],
        ]

    print()
    print(tabulate(rows, tablefmt="simple"))


if __name__ == "__main__":
    main()
