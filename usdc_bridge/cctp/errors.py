"""Error taxonomy for CCTP transfers.

Every error raised by the transfer machinery derives from :class:`CCTPTransferError`,
so callers can catch the whole family with one clause and still tell the
failure kinds apart.

Step failures wrap the underlying collaborator exception; the original
is available as ``__cause__``.
"""


class CCTPTransferError(Exception):
    """Base class for all CCTP transfer errors."""


class WalletNotConnected(CCTPTransferError):
    """No wallet session or signer is available for a chain taking part in the transfer."""


class UnsupportedChain(CCTPTransferError):
    """Chain id or bridge domain is not in the chain registry."""


class InvalidAddressFormat(CCTPTransferError, ValueError):
    """Address cannot be translated, e.g. wrong byte length or not hex/base58."""


class InvalidTransferRequest(CCTPTransferError, ValueError):
    """Transfer request fails validation, e.g. bad amount or same source and destination."""


class ApprovalFailed(CCTPTransferError):
    """USDC ``approve()`` for the token messenger failed."""


class BurnFailed(CCTPTransferError):
    """``depositForBurn`` failed on the source chain."""


class AttestationTransportFailed(CCTPTransferError):
    """Iris API returned a non-404 error or could not be reached."""


class TransactionExecutionError(CCTPTransferError):
    """Transient transaction execution failure reported by a signer.

    Raised by wallet sessions when a transaction could not be executed,
    e.g. it reverted during gas estimation or the receipt never arrived.
    The mint step retries these.
    """


class MintFailed(CCTPTransferError):
    """Minting on the destination chain failed."""


class MintFailedRetryable(MintFailed):
    """A single mint attempt failed with a transient error.

    Absorbed by the mint retry loop until attempts run out.
    """


class MintFailedFatal(MintFailed):
    """Mint attempts are exhausted or the failure cannot be retried."""


class SolanaKeyFormatInvalid(CCTPTransferError, ValueError):
    """Solana secret key is neither base58 (32 or 64 bytes) nor a 32-byte hex seed."""


class TransferCancelled(CCTPTransferError):
    """The transfer's cancellation token was triggered."""
