"""
Decision Loop - one planner-driven trading cycle

Flow per turn:
1. Ask the planner for the next step given the cycle transcript
2. No tool calls -> cycle done
3. Execute every requested call in order through the capability gateway
4. Feed results back as the next user message

The cycle also ends after a turn that called `wait`, when the planner
signals end_turn after its tools ran, or when the turn bound is hit.
Nothing carries over between cycles.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ai.llm_client import ToolCall
from ai.schemas import DEFAULT_CYCLE_SEED, MANUAL_BUY_SEED
from core.capabilities import CapabilityGateway, ToolResult
from infra.metrics import CycleStats

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 20

END_NO_TOOL_CALLS = "no_tool_calls"
END_WAIT = "wait"
END_TURN = "end_turn"
END_TURN_LIMIT = "turn_limit"


@dataclass
class ToolInvocation:
    call: ToolCall
    result: ToolResult


@dataclass
class CycleResult:
    """Result of a decision cycle"""
    end_reason: str
    turns: int
    invocations: List[ToolInvocation] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def tool_calls(self) -> int:
        return len(self.invocations)


def manual_buy_seed(mint: str) -> str:
    return MANUAL_BUY_SEED.format(mint=mint)


class DecisionLoop:
    """
    Drives the planner <-> gateway exchange for one cycle at a time.

    Planner exceptions propagate to the caller; gateway calls never raise.
    """

    def __init__(
        self,
        planner,
        gateway: CapabilityGateway,
        max_turns: int = DEFAULT_MAX_TURNS,
        activity_log=None,
        metrics=None,
    ):
        if max_turns < 1:
            raise ValueError(f"max_turns must be >= 1, got {max_turns}")
        self.planner = planner
        self.gateway = gateway
        self.max_turns = max_turns
        self.activity_log = activity_log
        self.metrics = metrics

    def run_cycle(self, seed: Optional[str] = None) -> CycleResult:
        started = time.monotonic()
        messages: List[Dict[str, Any]] = [{"role": "user", "content": seed or DEFAULT_CYCLE_SEED}]
        invocations: List[ToolInvocation] = []
        end_reason = END_TURN_LIMIT
        turns = 0

        logger.info("Starting trading cycle...")

        while turns < self.max_turns:
            turns += 1
            response = self.planner.next_step(messages)
            messages.append(response.assistant_message())

            if response.text.strip():
                logger.info(f"[planner] {response.text}")
                if self.activity_log is not None:
                    self.activity_log.log("agent", response.text[:1000])

            if not response.tool_calls:
                end_reason = END_NO_TOOL_CALLS
                logger.info("Cycle complete (no more tool calls)")
                break

            tool_results: List[Dict[str, Any]] = []
            for call in response.tool_calls:
                logger.info(f"Calling tool: {call.name}")
                result = self.gateway.execute(call.name, call.input)
                invocations.append(ToolInvocation(call=call, result=result))
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": call.id,
                    "content": json.dumps(result.to_dict(), default=str),
                    "is_error": not result.ok,
                })
            messages.append({"role": "user", "content": tool_results})

            if any(call.name == "wait" for call in response.tool_calls):
                end_reason = END_WAIT
                logger.info("Wait tool called - cycle ending")
                break

            if response.stop_reason == "end_turn":
                end_reason = END_TURN
                break
        else:
            logger.warning(f"Cycle hit turn limit ({self.max_turns})")

        result = CycleResult(
            end_reason=end_reason,
            turns=turns,
            invocations=invocations,
            duration_seconds=time.monotonic() - started,
        )
        if self.metrics is not None:
            self.metrics.observe_cycle(CycleStats(
                status=end_reason,
                turns=turns,
                tool_calls=result.tool_calls,
                duration_seconds=result.duration_seconds,
            ))
        logger.info(
            f"Cycle finished: {end_reason} after {turns} turn(s), {result.tool_calls} tool call(s) "
            f"in {result.duration_seconds:.1f}s"
        )
        return result
