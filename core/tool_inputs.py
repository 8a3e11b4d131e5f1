"""
Typed inputs for planner-invoked capabilities.

The planner sends free-form JSON; every capability parses it into one of
these models before anything touches the network or the ledger.
"""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import InvalidToolInput
from core.wallet import is_valid_mint

WAIT_MIN_S = 10
WAIT_MAX_S = 300


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EmptyInput(ToolInput):
    pass


class MintInput(ToolInput):
    mint_address: str = Field(min_length=1)

    @field_validator("mint_address")
    @classmethod
    def validate_mint(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_mint(v):
            raise ValueError(f"not a valid Solana mint address: {v!r}")
        return v


class SearchPostsInput(ToolInput):
    query: str = Field(min_length=1)
    # None falls back to the configured engagement thresholds
    min_likes: Optional[int] = Field(default=None, ge=0)
    min_retweets: Optional[int] = Field(default=None, ge=0)


class AnalyzeTokenInput(MintInput):
    pass


class BuyTokenInput(MintInput):
    sol_amount: float = Field(gt=0)
    source_ref: Optional[str] = None


class SellTokenInput(MintInput):
    percentage: float = 100.0

    @field_validator("percentage")
    @classmethod
    def clamp_percentage(cls, v: float) -> float:
        return min(100.0, max(1.0, v))


class SyncPortfolioInput(EmptyInput):
    pass


class WaitInput(ToolInput):
    seconds: float = 60.0

    @field_validator("seconds")
    @classmethod
    def clamp_seconds(cls, v: float) -> float:
        return float(min(WAIT_MAX_S, max(WAIT_MIN_S, v)))


TOOL_INPUT_MODELS: Dict[str, Type[ToolInput]] = {
    "search_posts": SearchPostsInput,
    "analyze_token": AnalyzeTokenInput,
    "buy_token": BuyTokenInput,
    "sell_token": SellTokenInput,
    "sync_portfolio": SyncPortfolioInput,
    "get_wallet_balance": EmptyInput,
    "get_portfolio": EmptyInput,
    "wait": WaitInput,
}


def parse_tool_input(tool_name: str, raw: Optional[Dict[str, Any]]) -> ToolInput:
    """
    Validate raw planner arguments for `tool_name`.

    Raises:
        InvalidToolInput: unknown tool, non-object arguments, or schema errors
    """
    model = TOOL_INPUT_MODELS.get(tool_name)
    if model is None:
        raise InvalidToolInput(tool_name, "unknown tool")
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise InvalidToolInput(tool_name, f"arguments must be an object, got {type(raw).__name__}")

    try:
        return model(**raw)
    except ValidationError as e:
        detail = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidToolInput(tool_name, detail) from e
