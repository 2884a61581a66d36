"""Transfer state machine tests.

Runs :py:class:`usdc_bridge.cctp.orchestrator.TransferOrchestrator` against
fake adapters, a fake wallet and canned Iris responses.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from usdc_bridge.cctp.adapter import NOOP_APPROVAL
from usdc_bridge.cctp.address import pad_address_to_bytes32
from usdc_bridge.cctp.attestation import AttestationPoller
from usdc_bridge.cctp.cancel import CancellationToken
from usdc_bridge.cctp.errors import (
    ApprovalFailed,
    AttestationTransportFailed,
    BurnFailed,
    InvalidTransferRequest,
    MintFailedFatal,
    TransactionExecutionError,
    TransferCancelled,
    UnsupportedChain,
)
from usdc_bridge.cctp.orchestrator import (
    TransferConfig,
    TransferMode,
    TransferOrchestrator,
    TransferRequest,
    TransferState,
)
from usdc_bridge.cctp.solana import SolanaChainAdapter
from usdc_bridge.cctp.wallet import SolanaSigner

from tests.cctp.fakes import (
    BASE_SEPOLIA,
    BURN_TX_HASH,
    ETHEREUM_SEPOLIA,
    OWNER,
    SOLANA_DEVNET,
    FakeAdapter,
    FakeIrisSession,
    make_response,
)


def _request(amount: str = "10", **kwargs) -> TransferRequest:
    return TransferRequest(
        source_chain_id=kwargs.get("source_chain_id", ETHEREUM_SEPOLIA),
        destination_chain_id=kwargs.get("destination_chain_id", BASE_SEPOLIA),
        amount=amount,
        destination_address=kwargs.get("destination_address"),
        transfer_mode=kwargs.get("transfer_mode", TransferMode.fast),
    )


def _record_states(orchestrator: TransferOrchestrator) -> list[tuple[TransferState, TransferState]]:
    transitions = []
    orchestrator.on_state_change(lambda old, new: transitions.append((old, new)))
    return transitions


def test_transfer_end_to_end(orchestrator, adapters, wallet, recording_sleep):
    """Two EVM testnets, fast mode: every state in order, no failure."""
    transitions = _record_states(orchestrator)

    result = orchestrator.execute_transfer(_request("10"))

    assert transitions == [
        (TransferState.idle, TransferState.approving),
        (TransferState.approving, TransferState.burning),
        (TransferState.burning, TransferState.waiting_attestation),
        (TransferState.waiting_attestation, TransferState.minting),
        (TransferState.minting, TransferState.completed),
    ]
    assert orchestrator.state == TransferState.completed
    assert orchestrator.error is None

    assert result.state == TransferState.completed
    assert result.amount == 10_000_000
    assert result.approve_tx_hash == "0xapprove"
    assert result.burn_tx_hash == BURN_TX_HASH
    assert result.mint_tx_hash == "0xmint"
    assert result.mint_attempts == 1
    assert result.attestation.attestation == b"\xaa" * 65

    source = adapters[ETHEREUM_SEPOLIA]
    assert source.approvals == [(orchestrator.registry.descriptor_for(ETHEREUM_SEPOLIA).burn_contract_address, 10_000_000)]
    burn = source.burns[0]
    assert burn["amount"] == 10_000_000
    assert burn["destination_domain"] == 6
    assert burn["max_fee"] == 9_999_999
    assert burn["finality_threshold"] == 1000
    # No destination address given, mint to our own address
    assert burn["mint_recipient"] == pad_address_to_bytes32(OWNER)

    # Already on the source chain, only the destination needs a switch
    assert wallet.switches == [BASE_SEPOLIA]
    assert recording_sleep.calls == [5.0]


def test_transfer_log_messages(orchestrator):
    """Log entries follow execution order."""
    orchestrator.execute_transfer(_request("1.5"))

    messages = [entry.message for entry in orchestrator.log]
    assert messages == [
        "Approving USDC transfer...",
        "USDC Approval Tx: 0xapprove",
        "Burning USDC...",
        f"Burn Tx: {BURN_TX_HASH}",
        "Retrieving attestation...",
        "Attestation retrieved!",
        "Switching to Base Sepolia...",
        "Minting USDC...",
        "Mint Tx: 0xmint",
    ]
    assert all(entry.timestamp is not None for entry in orchestrator.log)


def test_transfer_switches_to_source_chain(orchestrator, wallet, recording_sleep):
    """Wallet on the wrong chain is switched before approving."""
    wallet.switch_chain(BASE_SEPOLIA)
    wallet.switches.clear()

    orchestrator.execute_transfer(_request())

    assert wallet.switches == [ETHEREUM_SEPOLIA, BASE_SEPOLIA]
    assert recording_sleep.calls == [5.0, 5.0]
    assert orchestrator.log[0].message == "Switching to Ethereum Sepolia..."


def test_transfer_standard_mode(orchestrator, adapters):
    """Standard transfers use the hard finality threshold."""
    orchestrator.execute_transfer(_request(transfer_mode=TransferMode.standard))
    assert adapters[ETHEREUM_SEPOLIA].burns[0]["finality_threshold"] == 2000


def test_transfer_explicit_destination(orchestrator, adapters):
    """Mint recipient comes from the request when given."""
    recipient = "0x1111111111111111111111111111111111111111"
    orchestrator.execute_transfer(_request(destination_address=recipient))
    assert adapters[ETHEREUM_SEPOLIA].burns[0]["mint_recipient"] == pad_address_to_bytes32(recipient)


def test_mint_retries_then_succeeds(orchestrator, adapters, registry, recording_sleep):
    """Four transient mint failures are retried, the fifth attempt succeeds."""
    adapters[BASE_SEPOLIA] = FakeAdapter(registry.descriptor_for(BASE_SEPOLIA), mint_failures=4)

    result = orchestrator.execute_transfer(_request())

    assert orchestrator.state == TransferState.completed
    assert result.mint_attempts == 5
    assert adapters[BASE_SEPOLIA].mint_attempts == 5

    retries = [entry.message for entry in orchestrator.log if entry.message.startswith("Retry")]
    assert retries == [
        "Retry 1/5 in 2s...",
        "Retry 2/5 in 4s...",
        "Retry 3/5 in 6s...",
        "Retry 4/5 in 8s...",
    ]

    # Chain switch settle delay, then the growing retry delays
    assert recording_sleep.calls == [5.0, 2.0, 4.0, 6.0, 8.0]
    retry_delays = recording_sleep.calls[1:]
    assert retry_delays == sorted(retry_delays)


def test_mint_retries_exhausted(orchestrator, adapters, registry):
    """Five transient mint failures end the transfer."""
    adapters[BASE_SEPOLIA] = FakeAdapter(registry.descriptor_for(BASE_SEPOLIA), mint_failures=5)
    transitions = _record_states(orchestrator)

    with pytest.raises(MintFailedFatal) as exc_info:
        orchestrator.execute_transfer(_request())

    assert adapters[BASE_SEPOLIA].mint_attempts == 5
    assert orchestrator.state == TransferState.failed
    assert orchestrator.error is exc_info.value
    assert transitions[-1] == (TransferState.minting, TransferState.failed)

    messages = [entry.message for entry in orchestrator.log]
    assert len([m for m in messages if m.startswith("Retry")]) == 4
    assert messages[-1].startswith("Error: ")


def test_mint_fatal_error_not_retried(orchestrator, adapters, registry):
    """Unclassified mint errors are wrapped and fail at once."""

    class BrokenAdapter(FakeAdapter):
        def mint(self, attestation):
            self.mint_attempts += 1
            raise KeyError("nonce")

    adapters[BASE_SEPOLIA] = BrokenAdapter(registry.descriptor_for(BASE_SEPOLIA))

    with pytest.raises(MintFailedFatal) as exc_info:
        orchestrator.execute_transfer(_request())

    assert adapters[BASE_SEPOLIA].mint_attempts == 1
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_approve_failure_wrapped(orchestrator, adapters, registry):
    """Collaborator errors in approve become ApprovalFailed."""
    source = FakeAdapter(registry.descriptor_for(ETHEREUM_SEPOLIA))
    source.approve_error = TransactionExecutionError("insufficient funds for gas")
    adapters[ETHEREUM_SEPOLIA] = source

    with pytest.raises(ApprovalFailed) as exc_info:
        orchestrator.execute_transfer(_request())

    assert isinstance(exc_info.value.__cause__, TransactionExecutionError)
    assert orchestrator.state == TransferState.failed
    assert source.burns == []


def test_burn_failure_wrapped(orchestrator, adapters, registry, iris_session):
    """Execution errors in burn become BurnFailed and nothing is polled."""

    class RevertingBurnAdapter(FakeAdapter):
        def burn(self, amount, destination_domain, mint_recipient, max_fee, finality_threshold):
            raise TransactionExecutionError("execution reverted: Burn amount exceeds per tx limit")

    adapters[ETHEREUM_SEPOLIA] = RevertingBurnAdapter(registry.descriptor_for(ETHEREUM_SEPOLIA))
    transitions = _record_states(orchestrator)

    with pytest.raises(BurnFailed) as exc_info:
        orchestrator.execute_transfer(_request())

    assert isinstance(exc_info.value.__cause__, TransactionExecutionError)
    assert orchestrator.state == TransferState.failed
    assert orchestrator.error is exc_info.value
    assert transitions[-1] == (TransferState.burning, TransferState.failed)
    assert iris_session.requested_urls == []


def test_cancel_after_approve_stops_burn(orchestrator, adapters, registry):
    """A token cancelled between steps stops the transfer before the burn."""
    token = CancellationToken()

    class CancellingAdapter(FakeAdapter):
        def approve(self, spender, amount):
            tx_hash = super().approve(spender, amount)
            token.cancel()
            return tx_hash

    source = CancellingAdapter(registry.descriptor_for(ETHEREUM_SEPOLIA))
    adapters[ETHEREUM_SEPOLIA] = source

    with pytest.raises(TransferCancelled):
        orchestrator.execute_transfer(_request(), cancel_token=token)

    assert len(source.approvals) == 1
    assert source.burns == []
    assert orchestrator.state == TransferState.failed
    assert isinstance(orchestrator.error, TransferCancelled)


def test_cancelled_token_sends_nothing(orchestrator, adapters, registry):
    """An already cancelled token never reaches the chain."""
    source = FakeAdapter(registry.descriptor_for(ETHEREUM_SEPOLIA))
    adapters[ETHEREUM_SEPOLIA] = source
    token = CancellationToken()
    token.cancel()

    with pytest.raises(TransferCancelled):
        orchestrator.execute_transfer(_request(), cancel_token=token)

    assert source.approvals == []
    assert source.burns == []


def test_attestation_error_surfaced(registry, adapter_factory, wallet, recording_sleep):
    """Iris errors other than 404 fail the transfer verbatim."""
    session = FakeIrisSession([make_response(500, {"error": "boom"})])
    orchestrator = TransferOrchestrator(
        registry=registry,
        adapter_factory=adapter_factory,
        poller=AttestationPoller(session, registry, sleep=recording_sleep),
        wallet=wallet,
        sleep=recording_sleep,
    )

    with pytest.raises(AttestationTransportFailed):
        orchestrator.execute_transfer(_request())

    assert isinstance(orchestrator.error, AttestationTransportFailed)
    assert orchestrator.state == TransferState.failed


def test_invalid_requests(orchestrator):
    """Bad requests fail before any chain is touched."""
    with pytest.raises(InvalidTransferRequest):
        orchestrator.execute_transfer(_request(destination_chain_id=ETHEREUM_SEPOLIA))
    assert orchestrator.state == TransferState.failed

    with pytest.raises(InvalidTransferRequest):
        orchestrator.execute_transfer(_request("1.0000001"))

    with pytest.raises(InvalidTransferRequest):
        orchestrator.execute_transfer(_request("0"))

    with pytest.raises(UnsupportedChain):
        orchestrator.execute_transfer(_request(destination_chain_id=999_999))


def test_solana_source_skips_approval(orchestrator, wallet):
    """Solana burns need no approval but still pass through approving."""
    transitions = _record_states(orchestrator)

    result = orchestrator.execute_transfer(_request(source_chain_id=SOLANA_DEVNET))

    assert result.approve_tx_hash == NOOP_APPROVAL
    assert (TransferState.idle, TransferState.approving) in transitions
    assert orchestrator.state == TransferState.completed
    messages = [entry.message for entry in orchestrator.log]
    assert "No approval needed on Solana Devnet" in messages
    assert "Burning Solana USDC..." in messages
    # Only the EVM destination switches
    assert wallet.switches == [BASE_SEPOLIA]


def test_solana_destination(orchestrator, adapters, registry, wallet, recording_sleep):
    """EVM to Solana mints to the recipient's USDC token account without switching."""
    descriptor = registry.descriptor_for(SOLANA_DEVNET)
    keypair = Keypair()
    solana_adapter = SolanaChainAdapter(descriptor, SolanaSigner(keypair, MagicMock()), registry)

    class SolanaDestinationAdapter(FakeAdapter):
        def encode_mint_recipient(self, address):
            return solana_adapter.encode_mint_recipient(address)

    adapters[SOLANA_DEVNET] = SolanaDestinationAdapter(descriptor, owner=str(keypair.pubkey()))

    result = orchestrator.execute_transfer(_request(destination_chain_id=SOLANA_DEVNET))

    assert result.state == TransferState.completed
    burn = adapters[ETHEREUM_SEPOLIA].burns[0]
    assert burn["destination_domain"] == 5
    expected_token_account = get_associated_token_address(keypair.pubkey(), Pubkey.from_string(descriptor.token_address))
    assert burn["mint_recipient"] == bytes(expected_token_account)

    # Solana needs no wallet switch or settle delay
    assert wallet.switches == []
    assert recording_sleep.calls == []
    messages = [entry.message for entry in orchestrator.log]
    assert "Minting Solana USDC..." in messages


def test_reset_after_failure(orchestrator, adapters, registry):
    """reset() clears state, log and error."""
    adapters[BASE_SEPOLIA] = FakeAdapter(registry.descriptor_for(BASE_SEPOLIA), mint_failures=5)
    with pytest.raises(MintFailedFatal):
        orchestrator.execute_transfer(_request())

    transitions = _record_states(orchestrator)
    orchestrator.reset()

    assert orchestrator.state == TransferState.idle
    assert orchestrator.log == []
    assert orchestrator.error is None
    assert transitions == [(TransferState.failed, TransferState.idle)]


def test_reset_cancels_dangling_poll(registry, adapter_factory, wallet):
    """A poll outstanding at reset() ends without touching the reset state."""
    # Never indexed, polls forever until cancelled
    session = FakeIrisSession([make_response(404)])
    orchestrator = TransferOrchestrator(
        registry=registry,
        adapter_factory=adapter_factory,
        poller=AttestationPoller(session, registry, poll_interval=0.01),
        wallet=wallet,
        config=TransferConfig.create_test_config(),
    )

    errors = []

    def _run():
        try:
            orchestrator.execute_transfer(_request())
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=_run)
    thread.start()

    deadline = time.time() + 10
    while len(session.requested_urls) < 3:
        assert time.time() < deadline, "Poller never started"
        time.sleep(0.01)

    assert orchestrator.state == TransferState.waiting_attestation
    assert orchestrator.is_running

    # Only one transfer at a time
    with pytest.raises(RuntimeError):
        orchestrator.execute_transfer(_request())

    orchestrator.reset()
    thread.join(timeout=10)

    assert not thread.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], TransferCancelled)

    assert orchestrator.state == TransferState.idle
    assert orchestrator.log == []
    assert orchestrator.error is None
    assert not orchestrator.is_running


def test_new_transfer_after_completion(orchestrator):
    """A new transfer starts from a clean log."""
    orchestrator.execute_transfer(_request())
    first_log_length = len(orchestrator.log)

    orchestrator.execute_transfer(_request())

    assert orchestrator.state == TransferState.completed
    # Wallet was left on Base Sepolia, switch back first
    assert orchestrator.log[0].message == "Switching to Ethereum Sepolia..."
    assert len(orchestrator.log) == first_log_length + 1


def test_new_transfer_notifies_return_to_idle(orchestrator):
    """Listeners see the move back to idle before the next transfer starts."""
    orchestrator.execute_transfer(_request())
    transitions = _record_states(orchestrator)

    orchestrator.execute_transfer(_request())

    assert transitions[:2] == [
        (TransferState.completed, TransferState.idle),
        (TransferState.idle, TransferState.approving),
    ]
    for (_, new), (old, _) in zip(transitions, transitions[1:]):
        assert new == old


def test_listeners_unsubscribe(orchestrator):
    """Unsubscribed listeners receive nothing."""
    states = []
    entries = []
    unsubscribe_state = orchestrator.on_state_change(lambda old, new: states.append(new))
    unsubscribe_log = orchestrator.on_log(entries.append)
    unsubscribe_state()
    unsubscribe_log()

    orchestrator.execute_transfer(_request())

    assert states == []
    assert entries == []


def test_get_balance(orchestrator):
    """Balance reads go through the adapter and leave state alone."""
    assert orchestrator.get_balance(BASE_SEPOLIA) == "100"
    assert orchestrator.state == TransferState.idle
    assert orchestrator.log == []


def test_test_config_has_no_delays():
    """Test config keeps the retry policy but never waits."""
    config = TransferConfig.create_test_config()
    assert config.mint_max_attempts == 5
    assert config.network_switch_settle_delay == 0
    assert config.mint_retry_delay_unit == 0
