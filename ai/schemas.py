"""
Planner schemas: tool definitions, system prompt and cycle seeds.

Defines the contract between the decision loop and the planner model.
Tool input shapes here mirror the validated models in core.tool_inputs.
"""

from typing import Any, Dict, List

SYSTEM_PROMPT = """You are SolTrader, an autonomous Solana trading agent. Your goal is to grow the SOL balance of the trading wallet by finding trending tokens in social posts and trading them via the Jupiter swap aggregator.

## Your Trading Cycle

Each cycle, you should:
1. Call sync_portfolio first so the ledger matches the wallet
2. Check your wallet balance and current portfolio
3. Search social posts with two or three different queries ("pumpfun solana", "solana memecoin trending", "solana CA", "solana new token launch")
4. Analyze any token addresses you find (price, liquidity, volume)
5. Decide whether to buy; manage existing positions (take profits on pumps, cut losers)
6. Call wait before the next cycle

## Trading Rules (MUST FOLLOW)

- ALWAYS check wallet balance before buying
- ALWAYS analyze a token before buying
- NEVER buy a token with less than $5,000 liquidity
- Keep at least 0.05 SOL in the wallet for transaction fees
- Take profits: sell 50% at 2x, remaining at 3-5x
- Cut losses: sell if down more than 30%
- Spread across several tokens

## Real P&L = SOL Out vs SOL In

Token price going up does not mean you profit. Slippage and fees on both legs eat into returns. When sell_token returns real_pnl_sol, that is your actual profit or loss in SOL.

Always explain your reasoning briefly. If nothing is actionable, call wait."""

DEFAULT_CYCLE_SEED = (
    "Begin your next trading cycle. Sync and check the portfolio, search for opportunities, "
    "manage positions, then wait before the next cycle."
)

MANUAL_BUY_SEED = (
    "The user has manually requested to buy this token: {mint}. Analyze it first, then buy it "
    "if it looks safe (has liquidity, reasonable price impact). Use the configured buy amount."
)


def _tool(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "input_schema": {
            "type": "object",
            "properties": properties,
            "required": required,
        },
    }


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    _tool(
        "search_posts",
        "Search social posts for recent viral mentions of Solana tokens. Returns posts with engagement "
        "metrics and any token mint addresses found in the text or links.",
        {
            "query": {"type": "string", "description": "Search query, e.g. \"solana memecoin\""},
            "min_likes": {"type": "number", "description": "Minimum likes (defaults to the configured threshold)"},
            "min_retweets": {"type": "number", "description": "Minimum reposts (defaults to the configured threshold)"},
        },
        ["query"],
    ),
    _tool(
        "analyze_token",
        "Get market data for a Solana token: price, 24h volume, liquidity, 24h change. Use before buying.",
        {"mint_address": {"type": "string", "description": "Token mint address"}},
        ["mint_address"],
    ),
    _tool(
        "buy_token",
        "Buy a Solana token with SOL via Jupiter. Executes a real on-chain trade.",
        {
            "mint_address": {"type": "string", "description": "Token mint address to buy"},
            "sol_amount": {"type": "number", "description": "SOL to spend"},
            "source_ref": {"type": "string", "description": "Id of the social post that triggered the buy"},
        },
        ["mint_address", "sol_amount"],
    ),
    _tool(
        "sell_token",
        "Sell a Solana token back to SOL via Jupiter. Can sell a percentage of holdings.",
        {
            "mint_address": {"type": "string", "description": "Token mint address to sell"},
            "percentage": {"type": "number", "description": "Percent of held tokens to sell, 1-100 (default: 100)"},
        },
        ["mint_address"],
    ),
    _tool(
        "get_portfolio",
        "Get open positions with refreshed prices and unrealized P&L.",
        {},
        [],
    ),
    _tool(
        "get_wallet_balance",
        "Get the current SOL balance of the trading wallet.",
        {},
        [],
    ),
    _tool(
        "sync_portfolio",
        "Check every open position against the on-chain wallet balance and close positions whose tokens "
        "are gone. Call at the start of each cycle.",
        {},
        [],
    ),
    _tool(
        "wait",
        "Pause before the next trading cycle. Ends the current cycle.",
        {"seconds": {"type": "number", "description": "Seconds to wait, 10-300 (default: 60)"}},
        [],
    ),
]
