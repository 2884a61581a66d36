"""Cross-chain USDC transfer state machine.

Drives one transfer through approve, burn, attestation and mint::

    idle -> approving -> burning -> waiting-attestation -> minting -> completed
                 \\           \\               \\                \\
                  `-----------`---------------`----------------`--> failed

- Account chain steps first move the wallet session to the right chain
  and wait a settle delay, as switching is not otherwise observable.
- Solana needs no approval: the adapter returns a no-op marker,
  but the state still passes through ``approving``.
- Transient mint failures are retried in place with a growing delay.
- Any other failure moves to ``failed``, is logged as ``Error: ...``,
  retained in :py:attr:`TransferOrchestrator.error` and raised to the caller.

Progress is observable through state change and log listeners.

Example::

    orchestrator = TransferOrchestrator(
        registry=registry,
        adapter_factory=ChainAdapterFactory(registry, wallet=wallet),
        poller=AttestationPoller(create_iris_session(IRIS_API_SANDBOX_URL), registry),
        wallet=wallet,
    )
    orchestrator.on_state_change(lambda old, new: print(f"{old.value} -> {new.value}"))

    result = orchestrator.execute_transfer(
        TransferRequest(
            source_chain_id=11155111,
            destination_chain_id=84532,
            amount="10",
            transfer_mode=TransferMode.fast,
        )
    )
"""

import datetime
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from usdc_bridge.cctp.adapter import NOOP_APPROVAL, ChainAdapter
from usdc_bridge.cctp.amount import calculate_max_fee, format_units, parse_units
from usdc_bridge.cctp.attestation import Attestation, AttestationPoller
from usdc_bridge.cctp.cancel import CancellationToken
from usdc_bridge.cctp.constants import FINALITY_THRESHOLD_FAST, FINALITY_THRESHOLD_STANDARD
from usdc_bridge.cctp.errors import (
    ApprovalFailed,
    BurnFailed,
    CCTPTransferError,
    InvalidTransferRequest,
    MintFailedFatal,
    MintFailedRetryable,
    TransactionExecutionError,
    TransferCancelled,
)
from usdc_bridge.cctp.factory import ChainAdapterFactory
from usdc_bridge.cctp.registry import ChainDescriptor, ChainRegistry
from usdc_bridge.cctp.session import IrisSession
from usdc_bridge.cctp.wallet import SolanaSigner, WalletSession

logger = logging.getLogger(__name__)


class TransferState(enum.Enum):
    """Where a transfer is."""

    idle = "idle"

    approving = "approving"

    burning = "burning"

    waiting_attestation = "waiting-attestation"

    minting = "minting"

    completed = "completed"

    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferState.completed, TransferState.failed)


#: Forward transitions. ``reset()`` returns to ``idle`` from anywhere.
ALLOWED_TRANSITIONS: dict[TransferState, frozenset[TransferState]] = {
    TransferState.idle: frozenset({TransferState.approving, TransferState.failed}),
    TransferState.approving: frozenset({TransferState.burning, TransferState.failed}),
    TransferState.burning: frozenset({TransferState.waiting_attestation, TransferState.failed}),
    TransferState.waiting_attestation: frozenset({TransferState.minting, TransferState.failed}),
    TransferState.minting: frozenset({TransferState.completed, TransferState.failed}),
    TransferState.completed: frozenset(),
    TransferState.failed: frozenset(),
}


class TransferMode(enum.Enum):
    """Attestation speed."""

    #: Attested after soft finality, pays a fee
    fast = "fast"

    #: Attested after hard finality
    standard = "standard"

    @property
    def finality_threshold(self) -> int:
        if self == TransferMode.fast:
            return FINALITY_THRESHOLD_FAST
        return FINALITY_THRESHOLD_STANDARD


@dataclass(slots=True, frozen=True)
class TransferRequest:
    """What to move where."""

    source_chain_id: int

    destination_chain_id: int

    #: Human readable USDC amount, e.g. ``"10"`` or ``"1.5"``
    amount: str

    #: Recipient on the destination chain.
    #:
    #: Defaults to our own signer address there.
    destination_address: str | None = None

    transfer_mode: TransferMode = TransferMode.fast


@dataclass(slots=True, frozen=True)
class LogEntry:
    """One line of transfer progress."""

    timestamp: datetime.datetime

    message: str

    def __str__(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


@dataclass(slots=True)
class TransferResult:
    """Outcome of a completed transfer."""

    state: TransferState

    #: Amount in raw USDC units
    amount: int

    source_chain_id: int

    destination_chain_id: int

    #: Approval tx hash, or ``"noop"`` on Solana
    approve_tx_hash: str | None = None

    burn_tx_hash: str | None = None

    mint_tx_hash: str | None = None

    attestation: Attestation | None = None

    #: Mint attempts used, including the successful one
    mint_attempts: int = 0


@dataclass(slots=True)
class TransferConfig:
    """Timing and retry policy of a transfer.

    Example:

    .. code-block:: python

        # Production (default)
        config = TransferConfig()

        # No waiting in tests
        config = TransferConfig.create_test_config()
    """

    #: Seconds between attestation polls
    poll_interval: float = 5.0

    #: Seconds to wait after asking the wallet to switch chains
    network_switch_settle_delay: float = 5.0

    #: Mint attempts before giving up, including the first one
    mint_max_attempts: int = 5

    #: Delay before retry ``n`` is ``n * mint_retry_delay_unit`` seconds
    mint_retry_delay_unit: float = 2.0

    @classmethod
    def create_test_config(cls) -> "TransferConfig":
        """Same policy, no waiting."""
        return cls(
            poll_interval=0.0,
            network_switch_settle_delay=0.0,
            mint_max_attempts=5,
            mint_retry_delay_unit=0.0,
        )


#: Receives ``(old_state, new_state)``
StateListener = Callable[[TransferState, TransferState], None]

#: Receives each new log entry
LogListener = Callable[[LogEntry], None]


@dataclass(slots=True)
class _Run:
    """Bookkeeping of one ``execute_transfer()`` call."""

    run_id: int

    cancel_token: CancellationToken

    result: TransferResult | None = None

    #: Set once the flow no longer owns the orchestrator
    stale: bool = False


class TransferOrchestrator:
    """Run USDC transfers between chains, one at a time.

    The orchestrator is synchronous: :py:meth:`execute_transfer` returns
    when the transfer has completed or failed. Other threads may read
    :py:attr:`state`, :py:attr:`log` and balances meanwhile, and call
    :py:meth:`reset` to abort.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        adapter_factory: Callable[[ChainDescriptor], ChainAdapter],
        poller: AttestationPoller,
        wallet: WalletSession | None = None,
        config: TransferConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        """
        :param registry:
            Supported chains.

        :param adapter_factory:
            Builds the adapter for each transfer side,
            usually :py:class:`~usdc_bridge.cctp.factory.ChainAdapterFactory`.

        :param poller:
            Attestation poller.

        :param wallet:
            Account chain wallet session, switched between chains as needed.

        :param config:
            Timing and retry policy.

        :param sleep:
            Replace the cancellable sleep of settle and retry delays, e.g. in tests.
        """
        self.registry = registry
        self.adapter_factory = adapter_factory
        self.poller = poller
        self.wallet = wallet
        self.config = config or TransferConfig()
        assert self.config.mint_max_attempts >= 1, f"Need at least one mint attempt, got {self.config.mint_max_attempts}"
        self.sleep = sleep

        self._lock = threading.RLock()
        self._state = TransferState.idle
        self._log: list[LogEntry] = []
        self._error: Exception | None = None
        self._run_counter = 0
        self._current: _Run | None = None
        self._state_listeners: list[StateListener] = []
        self._log_listeners: list[LogListener] = []

    def __repr__(self) -> str:
        return f"<TransferOrchestrator state={self._state.value} log entries={len(self._log)}>"

    @property
    def state(self) -> TransferState:
        return self._state

    @property
    def log(self) -> list[LogEntry]:
        """Copy of the log of the current or last transfer."""
        with self._lock:
            return list(self._log)

    @property
    def error(self) -> Exception | None:
        """Why the last transfer failed, until :py:meth:`reset`."""
        return self._error

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._current is not None and not self._state.is_terminal

    def on_state_change(self, callback: StateListener) -> Callable[[], None]:
        """Subscribe to state transitions.

        :return:
            Call to unsubscribe.
        """
        with self._lock:
            self._state_listeners.append(callback)

        def _unsubscribe():
            with self._lock:
                if callback in self._state_listeners:
                    self._state_listeners.remove(callback)

        return _unsubscribe

    def on_log(self, callback: LogListener) -> Callable[[], None]:
        """Subscribe to new log entries.

        :return:
            Call to unsubscribe.
        """
        with self._lock:
            self._log_listeners.append(callback)

        def _unsubscribe():
            with self._lock:
                if callback in self._log_listeners:
                    self._log_listeners.remove(callback)

        return _unsubscribe

    def get_balance(self, chain_id: int, owner: str | None = None) -> str:
        """Read a USDC balance on any registered chain.

        Does not touch transfer state.

        :param owner:
            Defaults to our own signer on that chain.
        """
        descriptor = self.registry.descriptor_for(chain_id)
        return self.adapter_factory(descriptor).get_balance(owner)

    def reset(self):
        """Abort any running transfer and return to ``idle``.

        Clears the log and the retained error. A flow still running
        from before the reset is cancelled and can no longer change state.
        """
        with self._lock:
            if self._current is not None:
                self._current.stale = True
                self._current.cancel_token.cancel()
                self._current = None
            old = self._state
            self._state = TransferState.idle
            self._log = []
            self._error = None
            listeners = list(self._state_listeners)

        logger.info("Transfer state reset from %s", old.value)
        if old != TransferState.idle:
            for callback in listeners:
                callback(old, TransferState.idle)

    def _start(self, cancel_token: CancellationToken) -> _Run:
        with self._lock:
            if self._current is not None and not self._state.is_terminal:
                raise RuntimeError(f"A transfer is already running in state {self._state.value}, reset() first")
            self._run_counter += 1
            run = _Run(run_id=self._run_counter, cancel_token=cancel_token)
            self._current = run
            old = self._state
            self._state = TransferState.idle
            self._log = []
            self._error = None
            listeners = list(self._state_listeners)

        # Previous transfer ended in completed or failed
        if old != TransferState.idle:
            for callback in listeners:
                callback(old, TransferState.idle)
        return run

    def _check_current(self, run: _Run):
        """:raise TransferCancelled: The run was reset away or its token cancelled."""
        if run.stale or self._current is not run:
            raise TransferCancelled("Transfer was reset")
        run.cancel_token.raise_if_cancelled()

    def _set_state(self, run: _Run, new_state: TransferState):
        with self._lock:
            self._check_current(run)
            old = self._state
            if new_state not in ALLOWED_TRANSITIONS[old]:
                raise RuntimeError(f"Illegal transfer state transition {old.value} -> {new_state.value}")
            self._state = new_state
            listeners = list(self._state_listeners)

        logger.debug("Transfer state %s -> %s", old.value, new_state.value)
        for callback in listeners:
            callback(old, new_state)

    def _add_log(self, run: _Run, message: str, level: int = logging.INFO):
        entry = LogEntry(timestamp=datetime.datetime.now(), message=message)
        with self._lock:
            self._check_current(run)
            self._log.append(entry)
            listeners = list(self._log_listeners)

        logger.log(level, "%s", message)
        for callback in listeners:
            callback(entry)

    def _fail(self, run: _Run, error: Exception):
        """Move to ``failed`` unless the run was reset away."""
        with self._lock:
            if run.stale or self._current is not run:
                logger.info("Stale transfer ended with %s, state left untouched", error.__class__.__name__)
                return
            old = self._state
            self._state = TransferState.failed
            self._error = error
            entry = LogEntry(timestamp=datetime.datetime.now(), message=f"Error: {error}")
            self._log.append(entry)
            state_listeners = list(self._state_listeners)
            log_listeners = list(self._log_listeners)

        logger.error("Transfer failed in state %s: %s", old.value, error)
        for callback in log_listeners:
            callback(entry)
        for callback in state_listeners:
            callback(old, TransferState.failed)

    def _sleep(self, run: _Run, seconds: float):
        if self.sleep is None:
            run.cancel_token.sleep(seconds)
        else:
            run.cancel_token.raise_if_cancelled()
            self.sleep(seconds)
            run.cancel_token.raise_if_cancelled()
        self._check_current(run)

    def _ensure_chain(self, run: _Run, descriptor: ChainDescriptor):
        """Move the wallet to an account chain and let the switch settle."""
        if descriptor.is_program_chain or self.wallet is None:
            return

        if self.wallet.chain_id == descriptor.chain_id:
            return

        self._add_log(run, f"Switching to {descriptor.name}...")
        self.wallet.switch_chain(descriptor.chain_id)
        self._sleep(run, self.config.network_switch_settle_delay)

        if self.wallet.chain_id != descriptor.chain_id:
            logger.warning("Wallet reports chain %d after switching to %s (%d)", self.wallet.chain_id, descriptor.name, descriptor.chain_id)

    def _validate(self, request: TransferRequest) -> tuple[ChainDescriptor, ChainDescriptor, int]:
        if request.source_chain_id == request.destination_chain_id:
            raise InvalidTransferRequest(f"Source and destination are the same chain {request.source_chain_id}")
        source = self.registry.descriptor_for(request.source_chain_id)
        destination = self.registry.descriptor_for(request.destination_chain_id)
        amount = parse_units(request.amount, source.decimals)
        return source, destination, amount

    def execute_transfer(self, request: TransferRequest, cancel_token: CancellationToken | None = None) -> TransferResult:
        """Run a transfer to completion.

        :param request:
            What to transfer.

        :param cancel_token:
            Cancel to abort, :py:meth:`reset` does this too.

        :return:
            Result with the transaction hashes.

        :raise CCTPTransferError:
            The transfer failed. State is ``failed`` and the error retained.

        :raise RuntimeError:
            Another transfer is running.
        """
        run = self._start(cancel_token or CancellationToken())
        logger.info(
            "Starting USDC transfer of %s from chain %d to %d (%s)",
            request.amount,
            request.source_chain_id,
            request.destination_chain_id,
            request.transfer_mode.value,
        )
        try:
            return self._execute(run, request)
        except Exception as e:
            self._fail(run, e)
            raise

    def _execute(self, run: _Run, request: TransferRequest) -> TransferResult:
        source, destination, amount = self._validate(request)
        max_fee = calculate_max_fee(amount)

        source_adapter = self.adapter_factory(source)
        destination_adapter = self.adapter_factory(destination)

        recipient = request.destination_address or destination_adapter.owner_address
        mint_recipient = destination_adapter.encode_mint_recipient(recipient)

        result = TransferResult(
            state=TransferState.idle,
            amount=amount,
            source_chain_id=source.chain_id,
            destination_chain_id=destination.chain_id,
        )
        run.result = result

        self._ensure_chain(run, source)
        result.approve_tx_hash = self._approve(run, source, source_adapter, amount)

        self._ensure_chain(run, source)
        result.burn_tx_hash = self._burn(run, source, destination, source_adapter, amount, mint_recipient, max_fee, request.transfer_mode)

        result.attestation = self._wait_for_attestation(run, source, result.burn_tx_hash)

        self._ensure_chain(run, destination)
        result.mint_tx_hash = self._mint(run, destination, destination_adapter, result.attestation)

        self._set_state(run, TransferState.completed)
        result.state = TransferState.completed
        logger.info(
            "Transferred %s USDC from %s to %s, mint tx %s",
            format_units(amount, source.decimals),
            source.name,
            destination.name,
            result.mint_tx_hash,
        )
        return result

    def _approve(self, run: _Run, source: ChainDescriptor, adapter: ChainAdapter, amount: int) -> str:
        self._set_state(run, TransferState.approving)
        self._add_log(run, "Approving USDC transfer...")
        try:
            tx_hash = adapter.approve(source.burn_contract_address, amount)
        except Exception as e:
            if isinstance(e, CCTPTransferError) and not isinstance(e, TransactionExecutionError):
                raise
            raise ApprovalFailed(f"USDC approval on {source.name} failed: {e}") from e

        if tx_hash == NOOP_APPROVAL:
            self._add_log(run, f"No approval needed on {source.name}")
        else:
            self._add_log(run, f"USDC Approval Tx: {tx_hash}")
        return tx_hash

    def _burn(
        self,
        run: _Run,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        adapter: ChainAdapter,
        amount: int,
        mint_recipient: bytes,
        max_fee: int,
        mode: TransferMode,
    ) -> str:
        self._set_state(run, TransferState.burning)
        self._add_log(run, "Burning Solana USDC..." if source.is_program_chain else "Burning USDC...")
        try:
            tx_hash = adapter.burn(
                amount=amount,
                destination_domain=destination.bridge_domain,
                mint_recipient=mint_recipient,
                max_fee=max_fee,
                finality_threshold=mode.finality_threshold,
            )
        except Exception as e:
            if isinstance(e, CCTPTransferError) and not isinstance(e, TransactionExecutionError):
                raise
            raise BurnFailed(f"Burn on {source.name} failed: {e}") from e

        self._add_log(run, f"Burn Tx: {tx_hash}")
        return tx_hash

    def _wait_for_attestation(self, run: _Run, source: ChainDescriptor, burn_tx_hash: str) -> Attestation:
        self._set_state(run, TransferState.waiting_attestation)
        self._add_log(run, "Retrieving attestation...")

        def _on_phase_change(phase: str, attempt: int):
            if phase != "complete":
                self._add_log(run, "Waiting for attestation...", level=logging.DEBUG)

        attestation = self.poller.wait_for_attestation(
            burn_tx_hash,
            source.chain_id,
            cancel_token=run.cancel_token,
            on_phase_change=_on_phase_change,
        )
        self._check_current(run)
        self._add_log(run, "Attestation retrieved!")
        return attestation

    def _mint(self, run: _Run, destination: ChainDescriptor, adapter: ChainAdapter, attestation: Attestation) -> str:
        self._set_state(run, TransferState.minting)
        self._add_log(run, "Minting Solana USDC..." if destination.is_program_chain else "Minting USDC...")

        max_attempts = self.config.mint_max_attempts
        for attempt in range(1, max_attempts + 1):
            run.cancel_token.raise_if_cancelled()
            try:
                tx_hash = self._mint_attempt(destination, adapter, attestation, attempt)
            except MintFailedRetryable as e:
                if attempt == max_attempts:
                    raise MintFailedFatal(f"Mint on {destination.name} failed after {max_attempts} attempts: {e.__cause__}") from e
                delay = attempt * self.config.mint_retry_delay_unit
                self._add_log(run, f"Retry {attempt}/{max_attempts} in {delay:g}s...", level=logging.WARNING)
                self._sleep(run, delay)
                continue

            if run.result is not None:
                run.result.mint_attempts = attempt
            self._add_log(run, f"Mint Tx: {tx_hash}")
            return tx_hash

        raise MintFailedFatal(f"No mint attempts made on {destination.name}")

    def _mint_attempt(self, destination: ChainDescriptor, adapter: ChainAdapter, attestation: Attestation, attempt: int) -> str:
        """One mint attempt with its failure classified."""
        try:
            return adapter.mint(attestation)
        except TransactionExecutionError as e:
            raise MintFailedRetryable(f"Mint attempt {attempt} on {destination.name} failed: {e}") from e
        except CCTPTransferError:
            raise
        except Exception as e:
            raise MintFailedFatal(f"Mint on {destination.name} failed: {e}") from e


def create_orchestrator(
    registry: ChainRegistry,
    session: IrisSession,
    wallet: WalletSession | None = None,
    solana_signer: SolanaSigner | None = None,
    config: TransferConfig | None = None,
) -> TransferOrchestrator:
    """Wire an orchestrator with the standard adapters and poller.

    :param registry:
        Supported chains, see :py:func:`~usdc_bridge.cctp.registry.create_testnet_registry`.

    :param session:
        Iris API session matching the registry network.

    :param wallet:
        EVM wallet, needed when a transfer touches an account chain.

    :param solana_signer:
        Solana signer, needed when a transfer touches Solana.
    """
    config = config or TransferConfig()
    return TransferOrchestrator(
        registry=registry,
        adapter_factory=ChainAdapterFactory(registry, wallet=wallet, solana_signer=solana_signer),
        poller=AttestationPoller(session, registry, poll_interval=config.poll_interval),
        wallet=wallet,
        config=config,
    )
