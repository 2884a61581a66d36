"""Attestation polling against canned Iris responses."""

import pytest
import requests

from usdc_bridge.cctp.attestation import AttestationPoller, AttestationStatus, build_messages_url, parse_hex
from usdc_bridge.cctp.cancel import CancellationToken
from usdc_bridge.cctp.errors import AttestationTransportFailed, TransferCancelled

from tests.cctp.fakes import (
    BURN_TX_HASH,
    ETHEREUM_SEPOLIA,
    SOLANA_DEVNET,
    FakeIrisSession,
    RecordingSleep,
    build_message,
    complete_payload,
    make_response,
    pending_payload,
)


def _poller(session, registry, sleep) -> AttestationPoller:
    return AttestationPoller(session, registry, sleep=sleep)


def test_wait_until_indexed(registry, recording_sleep):
    """404s are retried at the poll interval until Iris has the message."""
    session = FakeIrisSession(
        [
            make_response(404),
            make_response(404),
            make_response(404),
            make_response(200, complete_payload()),
        ]
    )
    phases = []

    attestation = _poller(session, registry, recording_sleep).wait_for_attestation(
        BURN_TX_HASH,
        ETHEREUM_SEPOLIA,
        on_phase_change=lambda phase, attempt: phases.append((phase, attempt)),
    )

    assert attestation.status == AttestationStatus.complete
    assert attestation.message == build_message()
    assert attestation.attestation == b"\xaa" * 65

    assert recording_sleep.calls == [5.0, 5.0, 5.0]
    assert len(session.requested_urls) == 4
    assert session.requested_urls[0] == f"https://iris-api-sandbox.circle.com/v2/messages/0?transactionHash={BURN_TX_HASH}"

    assert phases == [
        ("waiting_for_indexing", 1),
        ("waiting_for_indexing", 2),
        ("waiting_for_indexing", 3),
        ("complete", 4),
    ]


def test_pending_until_complete(registry, recording_sleep):
    """Pending confirmations and empty message lists keep polling."""
    session = FakeIrisSession(
        [
            make_response(200, {"messages": []}),
            make_response(200, pending_payload()),
            make_response(200, complete_payload()),
        ]
    )
    phases = []

    _poller(session, registry, recording_sleep).wait_for_attestation(
        BURN_TX_HASH,
        ETHEREUM_SEPOLIA,
        on_phase_change=lambda phase, attempt: phases.append(phase),
    )

    assert phases == ["pending", "pending_confirmations", "complete"]
    assert len(recording_sleep.calls) == 2


def test_complete_status_with_pending_attestation(registry, recording_sleep):
    """A complete status still needs a signed attestation."""
    not_signed = {"messages": [{"status": "complete", "message": "0x" + build_message().hex(), "attestation": "PENDING"}]}
    session = FakeIrisSession([make_response(200, not_signed), make_response(200, complete_payload())])

    _poller(session, registry, recording_sleep).wait_for_attestation(BURN_TX_HASH, ETHEREUM_SEPOLIA)

    assert len(session.requested_urls) == 2


def test_evm_hash_prefixed(registry, recording_sleep):
    """Bare EVM hashes get a 0x prefix."""
    session = FakeIrisSession([make_response(200, complete_payload())])
    _poller(session, registry, recording_sleep).wait_for_attestation(BURN_TX_HASH.removeprefix("0x"), ETHEREUM_SEPOLIA)
    assert session.requested_urls[0].endswith(f"transactionHash={BURN_TX_HASH}")


def test_solana_signature_not_prefixed(registry, recording_sleep):
    """Solana signatures go as-is to the Solana domain."""
    signature = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"
    session = FakeIrisSession([make_response(200, complete_payload())])

    _poller(session, registry, recording_sleep).wait_for_attestation(signature, SOLANA_DEVNET)

    assert session.requested_urls[0] == build_messages_url("https://iris-api-sandbox.circle.com", 5, signature)


def test_server_error_not_retried(registry, recording_sleep):
    """Errors other than 404 fail at once."""
    session = FakeIrisSession([make_response(500, {"error": "internal"})])

    with pytest.raises(AttestationTransportFailed):
        _poller(session, registry, recording_sleep).wait_for_attestation(BURN_TX_HASH, ETHEREUM_SEPOLIA)

    assert recording_sleep.calls == []
    assert len(session.requested_urls) == 1


def test_network_error(registry, recording_sleep):
    """Connection problems surface as transport failures."""
    session = FakeIrisSession([requests.ConnectionError("connection refused")])

    with pytest.raises(AttestationTransportFailed) as exc_info:
        _poller(session, registry, recording_sleep).wait_for_attestation(BURN_TX_HASH, ETHEREUM_SEPOLIA)

    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "dict"],
        {"messages": "unexpected"},
        {"messages": ["not a dict"]},
        {"messages": [{"status": "complete", "message": None, "attestation": "0xaa"}]},
        {"messages": [{"status": "complete", "message": "0x01", "attestation": 123}]},
        {"messages": [{"status": "complete", "message": "0xzz", "attestation": "0xaa"}]},
    ],
)
def test_malformed_body(registry, recording_sleep, payload):
    """Unexpected response bodies are transport failures."""
    session = FakeIrisSession([make_response(200, payload)])

    with pytest.raises(AttestationTransportFailed):
        _poller(session, registry, recording_sleep).wait_for_attestation(BURN_TX_HASH, ETHEREUM_SEPOLIA)

    assert recording_sleep.calls == []


def test_cancelled_while_waiting(registry):
    """Cancelling the token stops a poll that would otherwise never end."""
    token = CancellationToken()
    session = FakeIrisSession([make_response(404)])

    def _cancel_on_third_sleep(seconds):
        if len(session.requested_urls) == 3:
            token.cancel()

    with pytest.raises(TransferCancelled):
        _poller(session, registry, _cancel_on_third_sleep).wait_for_attestation(BURN_TX_HASH, ETHEREUM_SEPOLIA, cancel_token=token)

    assert len(session.requested_urls) == 3


def test_already_cancelled(registry):
    """A cancelled token makes no requests."""
    token = CancellationToken()
    token.cancel()
    session = FakeIrisSession([make_response(200, complete_payload())])

    with pytest.raises(TransferCancelled):
        _poller(session, registry, RecordingSleep()).wait_for_attestation(BURN_TX_HASH, ETHEREUM_SEPOLIA, cancel_token=token)

    assert session.requested_urls == []


def test_parse_hex():
    assert parse_hex("0x0102") == b"\x01\x02"
    assert parse_hex("0102") == b"\x01\x02"
