"""
Planner client - tool-use interface to the LLM.

The decision loop hands the planner the cycle transcript (Anthropic
message format) and gets back rationale text plus the tool calls to run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ai.schemas import SYSTEM_PROMPT, TOOL_DEFINITIONS

logger = logging.getLogger(__name__)

# ─── Data Structures ───────────────────────────────────────────────────────

@dataclass
class ToolCall:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlannerResponse:
    """One planner turn: rationale text, requested tool calls, stop reason."""
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None

    def assistant_message(self) -> Dict[str, Any]:
        """Transcript entry for this turn."""
        content: List[Dict[str, Any]] = []
        if self.text:
            content.append({"type": "text", "text": self.text})
        for call in self.tool_calls:
            content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.input})
        return {"role": "assistant", "content": content}


# ─── Anthropic Planner ─────────────────────────────────────────────────────

class AnthropicPlannerClient:
    """
    Planner backed by the Anthropic messages API with tool use.

    Errors are not swallowed here: a failed planner call aborts the
    cycle and the supervisor applies backoff.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 4096,
        timeout_s: float = 60.0,
        system_prompt: str = SYSTEM_PROMPT,
        tools: Optional[List[Dict[str, Any]]] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.tools = tools if tools is not None else TOOL_DEFINITIONS

        # Lazy-import provider SDK
        import anthropic
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout_s)

    def next_step(self, messages: List[Dict[str, Any]]) -> PlannerResponse:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=self.system_prompt,
            tools=self.tools,
            messages=messages,
        )
        return self._parse_response(response)

    @staticmethod
    def _parse_response(response: Any) -> PlannerResponse:
        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text" and block.text.strip():
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, input=dict(block.input or {})))

        return PlannerResponse(
            text="\n".join(texts),
            tool_calls=calls,
            stop_reason=response.stop_reason,
        )


# ─── Scripted Planner for Testing ──────────────────────────────────────────

class ScriptedPlannerClient:
    """
    Replays pre-configured responses in order.

    Once the script runs out, returns a response with no tool calls, which
    ends the cycle.
    """

    def __init__(self, responses: Optional[List[PlannerResponse]] = None):
        self.responses = list(responses or [])
        self.call_count = 0
        self.seen_messages: List[List[Dict[str, Any]]] = []

    def next_step(self, messages: List[Dict[str, Any]]) -> PlannerResponse:
        self.seen_messages.append(list(messages))
        self.call_count += 1
        if self.responses:
            return self.responses.pop(0)
        return PlannerResponse(text="", tool_calls=[], stop_reason="end_turn")
