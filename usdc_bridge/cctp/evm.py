"""CCTP V2 on EVM chains.

Call data for the three contract calls a transfer makes:

- ``USDC.approve(TokenMessengerV2, amount)``
- ``TokenMessengerV2.depositForBurn(...)`` on the source chain
- ``MessageTransmitterV2.receiveMessage(message, attestation)`` on the destination chain

Calls are encoded with :py:func:`eth_abi.encode` and sent through an injected
:py:class:`~usdc_bridge.cctp.wallet.WalletSession`.

- `TokenMessengerV2 <https://developers.circle.com/cctp/evm-smart-contracts>`_
"""

import logging

from eth_abi import decode, encode
from eth_typing import HexAddress
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from usdc_bridge.cctp.adapter import ChainAdapter
from usdc_bridge.cctp.address import pad_address_to_bytes32
from usdc_bridge.cctp.amount import format_units
from usdc_bridge.cctp.attestation import Attestation
from usdc_bridge.cctp.registry import ChainDescriptor
from usdc_bridge.cctp.wallet import WalletSession

logger = logging.getLogger(__name__)

APPROVE_SIGNATURE = "approve(address,uint256)"

BALANCE_OF_SIGNATURE = "balanceOf(address)"

DEPOSIT_FOR_BURN_SIGNATURE = "depositForBurn(uint256,uint32,bytes32,address,bytes32,uint256,uint32)"

RECEIVE_MESSAGE_SIGNATURE = "receiveMessage(bytes,bytes)"

#: Empty ``destinationCaller``, anyone may relay the message
ZERO_BYTES32 = b"\x00" * 32


def _encode_call(signature: str, types: list[str], args: list) -> bytes:
    return function_signature_to_4byte_selector(signature) + encode(types, args)


def encode_balance_of(owner: HexAddress | str) -> bytes:
    return _encode_call(BALANCE_OF_SIGNATURE, ["address"], [to_checksum_address(owner)])


def encode_approve(spender: HexAddress | str, amount: int) -> bytes:
    """Encode ``approve(spender, amount)``."""
    return _encode_call(APPROVE_SIGNATURE, ["address", "uint256"], [to_checksum_address(spender), amount])


def encode_deposit_for_burn(
    amount: int,
    destination_domain: int,
    mint_recipient: bytes,
    burn_token: HexAddress | str,
    max_fee: int,
    min_finality_threshold: int,
) -> bytes:
    """Encode ``TokenMessengerV2.depositForBurn()``.

    The ``destinationCaller`` argument is always zero so any relayer can
    complete the transfer.

    :param amount:
        Raw USDC units.

    :param destination_domain:
        CCTP domain of the destination chain.

    :param mint_recipient:
        32-byte recipient.

    :param burn_token:
        USDC address on the source chain.

    :param max_fee:
        Maximum fee in raw units.

    :param min_finality_threshold:
        1000 for fast, 2000 for standard.
    """
    assert len(mint_recipient) == 32, f"Mint recipient must be 32 bytes, got {len(mint_recipient)}"
    return _encode_call(
        DEPOSIT_FOR_BURN_SIGNATURE,
        ["uint256", "uint32", "bytes32", "address", "bytes32", "uint256", "uint32"],
        [
            amount,
            destination_domain,
            mint_recipient,
            to_checksum_address(burn_token),
            ZERO_BYTES32,
            max_fee,
            min_finality_threshold,
        ],
    )


def encode_receive_message(message: bytes, attestation: bytes) -> bytes:
    """Encode ``MessageTransmitterV2.receiveMessage(message, attestation)``."""
    return _encode_call(RECEIVE_MESSAGE_SIGNATURE, ["bytes", "bytes"], [message, attestation])


class EVMChainAdapter(ChainAdapter):
    """USDC bridge operations on an EVM chain through a wallet session.

    Transactions are bound to this adapter's chain id explicitly,
    whatever chain the wallet has selected.
    """

    def __init__(self, descriptor: ChainDescriptor, wallet: WalletSession):
        assert not descriptor.is_program_chain, f"{descriptor.name} is not an EVM chain"
        super().__init__(descriptor)
        self.wallet = wallet

    @property
    def owner_address(self) -> str:
        return self.wallet.address

    def get_balance(self, owner: str | None = None) -> str:
        owner = owner or self.owner_address
        web3 = self.wallet.get_web3(self.descriptor.chain_id)
        result = web3.eth.call(
            {
                "to": to_checksum_address(self.descriptor.token_address),
                "data": encode_balance_of(owner),
            }
        )
        (raw_balance,) = decode(["uint256"], bytes(result))
        logger.debug("USDC balance of %s on %s: %d raw", owner, self.descriptor.name, raw_balance)
        return format_units(raw_balance, self.descriptor.decimals)

    def approve(self, spender: str, amount: int) -> str:
        logger.info("Approving %d raw USDC to %s on %s", amount, spender, self.descriptor.name)
        return self.wallet.send_transaction(
            self.descriptor.token_address,
            encode_approve(spender, amount),
            chain_id=self.descriptor.chain_id,
        )

    def burn(
        self,
        amount: int,
        destination_domain: int,
        mint_recipient: bytes,
        max_fee: int,
        finality_threshold: int,
    ) -> str:
        logger.info(
            "depositForBurn on %s: amount=%d, destination domain=%d, recipient=0x%s, max fee=%d, finality=%d",
            self.descriptor.name,
            amount,
            destination_domain,
            mint_recipient.hex(),
            max_fee,
            finality_threshold,
        )
        data = encode_deposit_for_burn(
            amount=amount,
            destination_domain=destination_domain,
            mint_recipient=mint_recipient,
            burn_token=self.descriptor.token_address,
            max_fee=max_fee,
            min_finality_threshold=finality_threshold,
        )
        return self.wallet.send_transaction(self.descriptor.burn_contract_address, data, chain_id=self.descriptor.chain_id)

    def mint(self, attestation: Attestation) -> str:
        logger.info("receiveMessage on %s: %d byte message", self.descriptor.name, len(attestation.message))
        data = encode_receive_message(attestation.message, attestation.attestation)
        return self.wallet.send_transaction(self.descriptor.mint_contract_address, data, chain_id=self.descriptor.chain_id)

    def encode_mint_recipient(self, address: str) -> bytes:
        return pad_address_to_bytes32(address)
