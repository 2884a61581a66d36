"""Circle CCTP V2 constants.

Cross-Chain Transfer Protocol V2 deployment addresses and domain mappings.

CCTP enables burn-and-mint USDC transfers across chains:

1. Source chain: call ``depositForBurn`` on TokenMessengerV2 to burn USDC
2. Circle's Iris attestation service signs the burn event
3. Destination chain: call ``receiveMessage`` on MessageTransmitterV2 to mint USDC

All CCTP V2 EVM contracts share the same address across EVM chains (deployed via CREATE2),
with one set of addresses for mainnets and one for testnets. On Solana
the same two programs (TokenMessengerMinterV2 and MessageTransmitterV2)
are deployed on both devnet and mainnet.

Chain ids are EVM chain ids. Solana has no EVM chain id, so we use the
cluster numbers ``101`` (mainnet-beta) and ``103`` (devnet) as its ids.

- `CCTP V2 documentation <https://developers.circle.com/cctp>`_
- `Supported chains and domains <https://developers.circle.com/cctp/concepts/supported-chains-and-domains>`_
"""

#: USDC uses 6 decimals on every CCTP chain
USDC_DECIMALS = 6

#: Circle Iris attestation API base URL (mainnet).
IRIS_API_BASE_URL = "https://iris-api.circle.com"

#: Circle Iris attestation API base URL (testnets).
IRIS_API_SANDBOX_URL = "https://iris-api-sandbox.circle.com"

#: Minimum finality threshold for standard (finalized) transfers.
FINALITY_THRESHOLD_STANDARD = 2000

#: Minimum finality threshold for fast (confirmed) transfers.
#: Uses lower block confirmation, may incur fees.
FINALITY_THRESHOLD_FAST = 1000

#: CCTP V2 TokenMessengerV2 on EVM mainnets.
TOKEN_MESSENGER_V2 = "0x28b5a0e9C621a5BadaA536219b3a228C8168cf5d"

#: CCTP V2 MessageTransmitterV2 on EVM mainnets.
MESSAGE_TRANSMITTER_V2 = "0x81D40F21F12A8F0E3252Bccb954D722d4c464B64"

#: CCTP V2 TokenMessengerV2 on EVM testnets.
TOKEN_MESSENGER_V2_TESTNET = "0x8FE6B999Dc680CcFDD5Bf7EB0974218be2542DAA"

#: CCTP V2 MessageTransmitterV2 on EVM testnets.
MESSAGE_TRANSMITTER_V2_TESTNET = "0xE737e5cEBEEBa77EFE34D4aa090756590b1CE275"

#: Solana TokenMessengerMinterV2 program id (devnet and mainnet).
SOLANA_TOKEN_MESSENGER_MINTER_V2 = "CCTPV2vPZJS2u2BBsUoscuikbYjnpFmbFsvVuJdgUMQe"

#: Solana MessageTransmitterV2 program id (devnet and mainnet).
SOLANA_MESSAGE_TRANSMITTER_V2 = "CCTPV2Sm4AdWt5296sk4P66VBZ7bEhcARwFaaS9YPbeC"

#: Public Solana devnet RPC
SOLANA_DEVNET_RPC = "https://api.devnet.solana.com"

#: Public Solana mainnet-beta RPC
SOLANA_MAINNET_RPC = "https://api.mainnet-beta.solana.com"

#: Solana "chain id" used in the registry for mainnet-beta
SOLANA_MAINNET_CHAIN_ID = 101

#: Solana "chain id" used in the registry for devnet
SOLANA_DEVNET_CHAIN_ID = 103

#: CCTP domain ID for Ethereum
CCTP_DOMAIN_ETHEREUM = 0

#: CCTP domain ID for Avalanche
CCTP_DOMAIN_AVALANCHE = 1

#: CCTP domain ID for OP Mainnet
CCTP_DOMAIN_OPTIMISM = 2

#: CCTP domain ID for Arbitrum
CCTP_DOMAIN_ARBITRUM = 3

#: CCTP domain ID for Solana
CCTP_DOMAIN_SOLANA = 5

#: CCTP domain ID for Base
CCTP_DOMAIN_BASE = 6

#: CCTP domain ID for Polygon PoS
CCTP_DOMAIN_POLYGON = 7

#: CCTP domain ID for Unichain
CCTP_DOMAIN_UNICHAIN = 10

#: CCTP domain ID for Linea
CCTP_DOMAIN_LINEA = 11

#: CCTP domain ID for Codex
CCTP_DOMAIN_CODEX = 12

#: CCTP domain ID for Sonic
CCTP_DOMAIN_SONIC = 13

#: CCTP domain ID for World Chain
CCTP_DOMAIN_WORLDCHAIN = 14

#: Mapping from CCTP domain ID to human-readable chain family name.
CCTP_DOMAIN_NAMES: dict[int, str] = {
    CCTP_DOMAIN_ETHEREUM: "Ethereum",
    CCTP_DOMAIN_AVALANCHE: "Avalanche",
    CCTP_DOMAIN_OPTIMISM: "OP",
    CCTP_DOMAIN_ARBITRUM: "Arbitrum",
    CCTP_DOMAIN_SOLANA: "Solana",
    CCTP_DOMAIN_BASE: "Base",
    CCTP_DOMAIN_POLYGON: "Polygon",
    CCTP_DOMAIN_UNICHAIN: "Unichain",
    CCTP_DOMAIN_LINEA: "Linea",
    CCTP_DOMAIN_CODEX: "Codex",
    CCTP_DOMAIN_SONIC: "Sonic",
    CCTP_DOMAIN_WORLDCHAIN: "World Chain",
}

#: Testnet deployments: chain id -> (name, CCTP domain, USDC address).
#:
#: EVM testnets all use :py:data:`TOKEN_MESSENGER_V2_TESTNET` and
#: :py:data:`MESSAGE_TRANSMITTER_V2_TESTNET`.
TESTNET_DEPLOYMENTS: dict[int, tuple[str, int, str]] = {
    11155111: ("Ethereum Sepolia", CCTP_DOMAIN_ETHEREUM, "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"),
    43113: ("Avalanche Fuji", CCTP_DOMAIN_AVALANCHE, "0x5425890298aed601595a70AB815c96711a31Bc65"),
    11155420: ("Optimism Sepolia", CCTP_DOMAIN_OPTIMISM, "0x5fd84259d66Cd46123540766Be93DFE6D43130D7"),
    421614: ("Arbitrum Sepolia", CCTP_DOMAIN_ARBITRUM, "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d"),
    SOLANA_DEVNET_CHAIN_ID: ("Solana Devnet", CCTP_DOMAIN_SOLANA, "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"),
    84532: ("Base Sepolia", CCTP_DOMAIN_BASE, "0x036CbD53842c5426634e7929541eC2318f3dCF7e"),
    80002: ("Polygon Amoy", CCTP_DOMAIN_POLYGON, "0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582"),
    1301: ("Unichain Sepolia", CCTP_DOMAIN_UNICHAIN, "0x31d0220469e10c4E71834a79b1f276d740d3768F"),
    59141: ("Linea Sepolia", CCTP_DOMAIN_LINEA, "0xFEce4462D57bD51A6A552365A011b95f0E16d9B7"),
    812242: ("Codex Testnet", CCTP_DOMAIN_CODEX, "0x6d7f141b6819C2c9CC2f818e6ad549E7Ca090F8f"),
    57054: ("Sonic Blaze", CCTP_DOMAIN_SONIC, "0xA4879Fed32Ecbef99399e5cbC247E533421C4eC6"),
    4801: ("Worldchain Sepolia", CCTP_DOMAIN_WORLDCHAIN, "0x66145f38cBAC35Ca6F1Dfb4914dF98F1614aeA88"),
}

#: Mainnet deployments: chain id -> (name, CCTP domain, USDC address).
MAINNET_DEPLOYMENTS: dict[int, tuple[str, int, str]] = {
    1: ("Ethereum", CCTP_DOMAIN_ETHEREUM, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
    43114: ("Avalanche", CCTP_DOMAIN_AVALANCHE, "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E"),
    10: ("OP Mainnet", CCTP_DOMAIN_OPTIMISM, "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85"),
    42161: ("Arbitrum One", CCTP_DOMAIN_ARBITRUM, "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"),
    SOLANA_MAINNET_CHAIN_ID: ("Solana", CCTP_DOMAIN_SOLANA, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"),
    8453: ("Base", CCTP_DOMAIN_BASE, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
    137: ("Polygon", CCTP_DOMAIN_POLYGON, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"),
}
