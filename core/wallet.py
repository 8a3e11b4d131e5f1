"""
Solana wallet and chain reads.

Keypair management plus the two balance queries the gateway needs:
native SOL and SPL token balance by mint. Mint address helpers live here
as well since they share the base58 / Pubkey parsing.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from core.exceptions import VenueError

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"

_BASE58_CANDIDATE = re.compile(r"\b[1-9A-HJ-NP-Za-km-z]{32,44}\b")


@dataclass
class TokenBalance:
    raw_amount: int
    decimals: int

    @property
    def ui_amount(self) -> float:
        return self.raw_amount / (10 ** self.decimals) if self.decimals else float(self.raw_amount)


def is_valid_mint(value: str) -> bool:
    """True if `value` is a base58 string decoding to a 32-byte public key."""
    if not isinstance(value, str) or not 32 <= len(value) <= 44:
        return False
    try:
        Pubkey.from_string(value)
    except ValueError:
        return False
    return True


def extract_mint_addresses(text: str) -> List[str]:
    """Candidate mint addresses found in free text, in order of appearance."""
    found: List[str] = []
    for candidate in _BASE58_CANDIDATE.findall(text or ""):
        if candidate not in found and is_valid_mint(candidate):
            found.append(candidate)
    return found


class SolanaWallet:
    """
    Trading wallet bound to one RPC endpoint.

    All RPC failures surface as VenueError("solana-rpc", ...).
    """

    VENUE = "solana-rpc"

    def __init__(self, rpc_url: str, private_key_b58: str, client: Optional[Client] = None):
        self.keypair = Keypair.from_base58_string(private_key_b58)
        self.client = client or Client(rpc_url, commitment=Confirmed)
        logger.info(f"Wallet loaded: {self.public_key} (RPC {rpc_url.split('?')[0]})")

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def get_sol_balance(self) -> float:
        try:
            lamports = self.client.get_balance(self.keypair.pubkey(), commitment=Confirmed).value
        except Exception as e:
            raise VenueError(self.VENUE, f"get_balance failed: {e}") from e
        return lamports / LAMPORTS_PER_SOL

    def get_token_balance(self, mint: str) -> TokenBalance:
        """
        Sum of all token accounts the wallet holds for `mint`.

        Returns a zero balance when the wallet has no account for the mint.
        """
        try:
            resp = self.client.get_token_accounts_by_owner_json_parsed(
                self.keypair.pubkey(),
                TokenAccountOpts(mint=Pubkey.from_string(mint)),
                commitment=Confirmed,
            )
        except Exception as e:
            raise VenueError(self.VENUE, f"token accounts lookup failed for {mint}: {e}") from e

        raw_total = 0
        decimals = 0
        for keyed in resp.value or []:
            info = keyed.account.data.parsed.get("info", {})
            token_amount = info.get("tokenAmount", {})
            raw_total += int(token_amount.get("amount", 0))
            decimals = int(token_amount.get("decimals", decimals))

        return TokenBalance(raw_amount=raw_total, decimals=decimals)
