"""CCTP V2 on Solana.

Solana has no allowance model and no contract ABI: a burn or a mint is an
Anchor instruction with an explicit, ordered account list, most of which
are program derived addresses (PDAs).

- ``deposit_for_burn`` on the TokenMessengerMinterV2 program burns USDC
  from the owner's associated token account (ATA)
- ``receive_message`` on the MessageTransmitterV2 program mints USDC.
  It takes 9 named accounts followed by 11 remaining accounts that the
  transmitter forwards to the token messenger.

Instruction data is the 8-byte Anchor discriminator followed by the
borsh serialised parameter struct.

- `Solana programs <https://developers.circle.com/cctp/solana-programs>`_
"""

import hashlib
import logging
import struct
from dataclasses import dataclass

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import create_associated_token_account, get_associated_token_address

from usdc_bridge.cctp.adapter import NOOP_APPROVAL, ChainAdapter
from usdc_bridge.cctp.address import pad_address_to_bytes32
from usdc_bridge.cctp.amount import format_units
from usdc_bridge.cctp.attestation import Attestation
from usdc_bridge.cctp.errors import InvalidAddressFormat
from usdc_bridge.cctp.message import decode_burn_message_body, decode_message
from usdc_bridge.cctp.registry import ChainDescriptor, ChainRegistry
from usdc_bridge.cctp.wallet import SolanaSigner

logger = logging.getLogger(__name__)

#: Byte offset of ``fee_recipient`` in the TokenMessenger account.
#:
#: discriminator (8) + denylister (32) + owner (32) + pending_owner (32)
#: + message_body_version (4) + authority_bump (1)
TOKEN_MESSENGER_FEE_RECIPIENT_OFFSET = 109

#: Anchor ``#[event_cpi]`` authority seed
EVENT_AUTHORITY_SEED = b"__event_authority"


def anchor_discriminator(instruction_name: str) -> bytes:
    """First 8 bytes of ``sha256("global:<name>")``."""
    return hashlib.sha256(f"global:{instruction_name}".encode()).digest()[:8]


def encode_deposit_for_burn_data(
    amount: int,
    destination_domain: int,
    mint_recipient: bytes,
    max_fee: int,
    min_finality_threshold: int,
    destination_caller: bytes = b"\x00" * 32,
) -> bytes:
    """Instruction data for ``deposit_for_burn``.

    Borsh layout: ``u64 amount, u32 destination_domain, [u8; 32] mint_recipient,
    [u8; 32] destination_caller, u64 max_fee, u32 min_finality_threshold``.
    """
    assert len(mint_recipient) == 32, f"Mint recipient must be 32 bytes, got {len(mint_recipient)}"
    assert len(destination_caller) == 32, f"Destination caller must be 32 bytes, got {len(destination_caller)}"
    return (
        anchor_discriminator("deposit_for_burn")
        + struct.pack("<QI", amount, destination_domain)
        + bytes(mint_recipient)
        + bytes(destination_caller)
        + struct.pack("<QI", max_fee, min_finality_threshold)
    )


def encode_receive_message_data(message: bytes, attestation: bytes) -> bytes:
    """Instruction data for ``receive_message``, two length prefixed byte vectors."""
    return (
        anchor_discriminator("receive_message")
        + struct.pack("<I", len(message))
        + bytes(message)
        + struct.pack("<I", len(attestation))
        + bytes(attestation)
    )


def _pda(seeds: list[bytes], program_id: Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address(seeds, program_id)
    return address


@dataclass(slots=True, frozen=True)
class DepositForBurnPdas:
    """Derived accounts for ``deposit_for_burn``."""

    sender_authority: Pubkey
    denylist_account: Pubkey
    message_transmitter: Pubkey
    token_messenger: Pubkey
    remote_token_messenger: Pubkey
    token_minter: Pubkey
    local_token: Pubkey
    event_authority: Pubkey


@dataclass(slots=True, frozen=True)
class ReceiveMessagePdas:
    """Derived accounts for ``receive_message``."""

    token_messenger: Pubkey
    message_transmitter: Pubkey
    token_minter: Pubkey
    local_token: Pubkey
    remote_token_messenger: Pubkey
    token_pair: Pubkey
    custody_token_account: Pubkey

    #: Signs the CPI from message transmitter to token messenger
    authority_pda: Pubkey

    #: Replay protection, created by the transmitter
    used_nonce: Pubkey

    message_transmitter_event_authority: Pubkey
    token_messenger_event_authority: Pubkey


def find_deposit_for_burn_pdas(
    token_messenger_minter: Pubkey,
    message_transmitter: Pubkey,
    usdc_mint: Pubkey,
    owner: Pubkey,
    destination_domain: int,
) -> DepositForBurnPdas:
    """Derive the burn accounts. Domains are seeded as decimal strings."""
    return DepositForBurnPdas(
        sender_authority=_pda([b"sender_authority"], token_messenger_minter),
        denylist_account=_pda([b"denylist_account", bytes(owner)], token_messenger_minter),
        message_transmitter=_pda([b"message_transmitter"], message_transmitter),
        token_messenger=_pda([b"token_messenger"], token_messenger_minter),
        remote_token_messenger=_pda([b"remote_token_messenger", str(destination_domain).encode()], token_messenger_minter),
        token_minter=_pda([b"token_minter"], token_messenger_minter),
        local_token=_pda([b"local_token", bytes(usdc_mint)], token_messenger_minter),
        event_authority=_pda([EVENT_AUTHORITY_SEED], token_messenger_minter),
    )


def find_receive_message_pdas(
    token_messenger_minter: Pubkey,
    message_transmitter: Pubkey,
    usdc_mint: Pubkey,
    remote_token: bytes,
    source_domain: int,
    nonce: bytes,
) -> ReceiveMessagePdas:
    """Derive the mint accounts.

    :param remote_token:
        USDC on the source chain as ``bytes32``.

    :param nonce:
        32-byte message nonce.
    """
    assert len(remote_token) == 32, f"Remote token must be 32 bytes, got {len(remote_token)}"
    assert len(nonce) == 32, f"Nonce must be 32 bytes, got {len(nonce)}"
    domain_seed = str(source_domain).encode()
    return ReceiveMessagePdas(
        token_messenger=_pda([b"token_messenger"], token_messenger_minter),
        message_transmitter=_pda([b"message_transmitter"], message_transmitter),
        token_minter=_pda([b"token_minter"], token_messenger_minter),
        local_token=_pda([b"local_token", bytes(usdc_mint)], token_messenger_minter),
        remote_token_messenger=_pda([b"remote_token_messenger", domain_seed], token_messenger_minter),
        token_pair=_pda([b"token_pair", domain_seed, bytes(remote_token)], token_messenger_minter),
        custody_token_account=_pda([b"custody", bytes(usdc_mint)], token_messenger_minter),
        authority_pda=_pda([b"message_transmitter_authority", bytes(token_messenger_minter)], message_transmitter),
        used_nonce=_pda([b"used_nonce", bytes(nonce)], message_transmitter),
        message_transmitter_event_authority=_pda([EVENT_AUTHORITY_SEED], message_transmitter),
        token_messenger_event_authority=_pda([EVENT_AUTHORITY_SEED], token_messenger_minter),
    )


def _meta(pubkey: Pubkey, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


def parse_solana_pubkey(address: str) -> Pubkey:
    """:raise InvalidAddressFormat: Not a base58 public key"""
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidAddressFormat(f"Invalid Solana address '{address}': {e}") from e


class SolanaChainAdapter(ChainAdapter):
    """USDC bridge operations on Solana through a :py:class:`~usdc_bridge.cctp.wallet.SolanaSigner`.

    :param registry:
        Needed on mint to find the source chain USDC for the token pair account.
    """

    def __init__(self, descriptor: ChainDescriptor, signer: SolanaSigner, registry: ChainRegistry):
        assert descriptor.is_program_chain, f"{descriptor.name} is not Solana"
        super().__init__(descriptor)
        self.signer = signer
        self.registry = registry
        self.usdc_mint = Pubkey.from_string(descriptor.token_address)
        self.token_messenger_minter = Pubkey.from_string(descriptor.burn_contract_address)
        self.message_transmitter = Pubkey.from_string(descriptor.mint_contract_address)

    @property
    def owner_address(self) -> str:
        return self.signer.address

    def get_associated_token_account(self, owner: Pubkey) -> Pubkey:
        """USDC ATA of a wallet."""
        return get_associated_token_address(owner, self.usdc_mint)

    def get_balance(self, owner: str | None = None) -> str:
        owner_key = parse_solana_pubkey(owner) if owner else self.signer.pubkey
        ata = self.get_associated_token_account(owner_key)
        client = self.signer.client

        if client.get_account_info(ata).value is None:
            logger.debug("No USDC token account %s for %s", ata, owner_key)
            return "0"

        raw_amount = int(client.get_token_account_balance(ata).value.amount)
        return format_units(raw_amount, self.descriptor.decimals)

    def approve(self, spender: str, amount: int) -> str:
        logger.debug("SPL burns need no approval, skipping approve of %d to %s", amount, spender)
        return NOOP_APPROVAL

    def build_deposit_for_burn_instruction(
        self,
        amount: int,
        destination_domain: int,
        mint_recipient: bytes,
        max_fee: int,
        finality_threshold: int,
        message_sent_event_data: Pubkey,
    ) -> Instruction:
        owner = self.signer.pubkey
        pdas = find_deposit_for_burn_pdas(
            self.token_messenger_minter,
            self.message_transmitter,
            self.usdc_mint,
            owner,
            destination_domain,
        )
        accounts = [
            _meta(owner, signer=True),
            _meta(owner, signer=True, writable=True),
            _meta(pdas.sender_authority),
            _meta(self.get_associated_token_account(owner), writable=True),
            _meta(pdas.denylist_account),
            _meta(pdas.message_transmitter, writable=True),
            _meta(pdas.token_messenger),
            _meta(pdas.remote_token_messenger),
            _meta(pdas.token_minter),
            _meta(pdas.local_token, writable=True),
            _meta(self.usdc_mint, writable=True),
            _meta(message_sent_event_data, signer=True, writable=True),
            _meta(self.message_transmitter),
            _meta(self.token_messenger_minter),
            _meta(TOKEN_PROGRAM_ID),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(pdas.event_authority),
            _meta(self.token_messenger_minter),
        ]
        data = encode_deposit_for_burn_data(
            amount=amount,
            destination_domain=destination_domain,
            mint_recipient=mint_recipient,
            max_fee=max_fee,
            min_finality_threshold=finality_threshold,
        )
        return Instruction(self.token_messenger_minter, data, accounts)

    def burn(
        self,
        amount: int,
        destination_domain: int,
        mint_recipient: bytes,
        max_fee: int,
        finality_threshold: int,
    ) -> str:
        # Single use account holding the MessageSent event, must sign the burn
        message_sent_event_data = Keypair()
        instruction = self.build_deposit_for_burn_instruction(
            amount=amount,
            destination_domain=destination_domain,
            mint_recipient=mint_recipient,
            max_fee=max_fee,
            finality_threshold=finality_threshold,
            message_sent_event_data=message_sent_event_data.pubkey(),
        )
        logger.info(
            "deposit_for_burn on %s: amount=%d, destination domain=%d, finality=%d, event account %s",
            self.descriptor.name,
            amount,
            destination_domain,
            finality_threshold,
            message_sent_event_data.pubkey(),
        )
        return self.signer.send_transaction([instruction], extra_signers=[message_sent_event_data])

    def fetch_fee_recipient(self, token_messenger: Pubkey) -> Pubkey:
        """Read ``fee_recipient`` from the TokenMessenger account."""
        account = self.signer.client.get_account_info(token_messenger).value
        assert account is not None, f"TokenMessenger account {token_messenger} not found on {self.descriptor.name}"
        data = bytes(account.data)
        offset = TOKEN_MESSENGER_FEE_RECIPIENT_OFFSET
        return Pubkey.from_bytes(data[offset : offset + 32])

    def build_receive_message_instruction(self, attestation: Attestation) -> Instruction:
        message = decode_message(attestation.message)
        body = decode_burn_message_body(message.body)

        source = self.registry.descriptor_for_domain(message.source_domain)
        remote_token = pad_address_to_bytes32(source.token_address)

        pdas = find_receive_message_pdas(
            self.token_messenger_minter,
            self.message_transmitter,
            self.usdc_mint,
            remote_token,
            message.source_domain,
            message.nonce,
        )
        fee_recipient_token_account = self.get_associated_token_account(self.fetch_fee_recipient(pdas.token_messenger))
        recipient_token_account = Pubkey.from_bytes(body.mint_recipient)

        payer = self.signer.pubkey
        accounts = [
            _meta(payer, signer=True, writable=True),
            _meta(payer, signer=True),
            _meta(pdas.authority_pda),
            _meta(pdas.message_transmitter),
            _meta(pdas.used_nonce, writable=True),
            _meta(self.token_messenger_minter),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(pdas.message_transmitter_event_authority),
            _meta(self.message_transmitter),
            # Remaining accounts, forwarded to the token messenger
            _meta(pdas.token_messenger),
            _meta(pdas.remote_token_messenger),
            _meta(pdas.token_minter, writable=True),
            _meta(pdas.local_token, writable=True),
            _meta(pdas.token_pair),
            _meta(fee_recipient_token_account, writable=True),
            _meta(recipient_token_account, writable=True),
            _meta(pdas.custody_token_account, writable=True),
            _meta(TOKEN_PROGRAM_ID),
            _meta(pdas.token_messenger_event_authority),
            _meta(self.token_messenger_minter),
        ]
        data = encode_receive_message_data(attestation.message, attestation.attestation)
        return Instruction(self.message_transmitter, data, accounts)

    def mint(self, attestation: Attestation) -> str:
        instruction = self.build_receive_message_instruction(attestation)
        instructions = [instruction]

        # Our own token account may not exist yet on first receive
        own_ata = self.get_associated_token_account(self.signer.pubkey)
        recipient = Pubkey.from_bytes(decode_burn_message_body(decode_message(attestation.message).body).mint_recipient)
        if recipient == own_ata and self.signer.client.get_account_info(own_ata).value is None:
            logger.info("Creating USDC token account %s for %s", own_ata, self.signer.pubkey)
            instructions.insert(0, create_associated_token_account(self.signer.pubkey, self.signer.pubkey, self.usdc_mint))

        logger.info("receive_message on %s: recipient token account %s", self.descriptor.name, recipient)
        return self.signer.send_transaction(instructions)

    def encode_mint_recipient(self, address: str) -> bytes:
        return bytes(self.get_associated_token_account(parse_solana_pubkey(address)))
