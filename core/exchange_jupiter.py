"""
soltrader Core: Swap Venue (Jupiter)

Jupiter swap v1 integration: quote, build, sign, submit, confirm.
Quotes and swap builds go through request_json (rate limited, retried);
the signed transaction is submitted to the wallet's RPC endpoint.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.transaction import VersionedTransaction

from core.exceptions import VenueError
from core.wallet import LAMPORTS_PER_SOL, SOL_MINT, SolanaWallet
from infra.http import request_json
from infra.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

JUPITER_BASE = "https://api.jup.ag/swap/v1"

# Priority fee ceiling for swap transactions
MAX_PRIORITY_FEE_LAMPORTS = 1_000_000


@dataclass
class SwapQuote:
    """Route quote; amounts are raw integer units of the respective mints"""
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float
    raw: Dict[str, Any]

    @property
    def out_sol(self) -> float:
        return self.out_amount / LAMPORTS_PER_SOL


class JupiterSwapVenue:
    """
    Jupiter swap connector.

    Supports:
    - Quotes in either direction (SOL -> token, token -> SOL)
    - Swap execution with confirmation at `confirmed` commitment
    """

    VENUE = "jupiter"

    def __init__(
        self,
        wallet: SolanaWallet,
        slippage_bps: int = 300,
        api_key: Optional[str] = None,
        base_url: str = JUPITER_BASE,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 20.0,
        max_retries: int = 3,
    ):
        self.wallet = wallet
        self.slippage_bps = slippage_bps
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _req(self, method: str, endpoint: str, params: Optional[dict] = None, body: Optional[dict] = None) -> Any:
        return request_json(
            method,
            f"{self.base_url}{endpoint}",
            venue=self.VENUE,
            params=params,
            body=body,
            headers=self._headers(),
            timeout=self.timeout,
            max_retries=self.max_retries,
            rate_limiter=self.rate_limiter,
        )

    def get_quote(self, input_mint: str, output_mint: str, amount_raw: int) -> SwapQuote:
        data = self._req(
            "GET",
            "/quote",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(int(amount_raw)),
                "slippageBps": str(self.slippage_bps),
            },
        )
        try:
            quote = SwapQuote(
                input_mint=input_mint,
                output_mint=output_mint,
                in_amount=int(data["inAmount"]),
                out_amount=int(data["outAmount"]),
                price_impact_pct=float(data.get("priceImpactPct") or 0),
                raw=data,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise VenueError(self.VENUE, f"Malformed quote response: {e}")

        logger.info(
            f"Quote {input_mint[:8]}... -> {output_mint[:8]}...: "
            f"{quote.in_amount} -> {quote.out_amount} (impact {quote.price_impact_pct:.2f}%)"
        )
        return quote

    def buy_quote(self, mint: str, sol_amount: float) -> SwapQuote:
        lamports = int(sol_amount * LAMPORTS_PER_SOL)
        return self.get_quote(SOL_MINT, mint, lamports)

    def sell_quote(self, mint: str, raw_amount: int) -> SwapQuote:
        return self.get_quote(mint, SOL_MINT, raw_amount)

    def execute_swap(self, quote: SwapQuote) -> str:
        """
        Build, sign, submit and confirm the swap for `quote`.

        Returns:
            Transaction signature (base58)

        Raises:
            VenueError: if the build, submission or confirmation fails
        """
        swap = self._req(
            "POST",
            "/swap",
            body={
                "quoteResponse": quote.raw,
                "userPublicKey": self.wallet.public_key,
                "wrapAndUnwrapSol": True,
                "dynamicComputeUnitLimit": True,
                "dynamicSlippage": True,
                "prioritizationFeeLamports": {
                    "priorityLevelWithMaxLamports": {
                        "maxLamports": MAX_PRIORITY_FEE_LAMPORTS,
                        "priorityLevel": "high",
                    }
                },
            },
        )
        if not swap.get("swapTransaction"):
            raise VenueError(self.VENUE, "Swap response missing swapTransaction")

        try:
            unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap["swapTransaction"]))
            signed = VersionedTransaction(unsigned.message, [self.wallet.keypair])
        except Exception as e:
            raise VenueError(self.VENUE, f"Failed to sign swap transaction: {e}") from e

        client = self.wallet.client
        try:
            signature = client.send_raw_transaction(
                bytes(signed),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=3),
            ).value
            confirmation = client.confirm_transaction(
                signature,
                commitment=Confirmed,
                last_valid_block_height=swap.get("lastValidBlockHeight"),
            )
        except Exception as e:
            raise VenueError(SolanaWallet.VENUE, f"Swap submission failed: {e}") from e

        # Landed is not succeeded: a reverted swap still confirms
        statuses = confirmation.value or []
        tx_error = statuses[0].err if statuses and statuses[0] is not None else None
        if tx_error is not None:
            logger.error(f"Swap {signature} failed on-chain: {tx_error}")
            raise VenueError(SolanaWallet.VENUE, f"Swap failed on-chain: {tx_error} (tx: {signature})")

        logger.info(f"Swap confirmed: {signature}")
        return str(signature)
