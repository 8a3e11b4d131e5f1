"""
Planner Module

LLM planner client and the tool/prompt schemas it is driven with.

Core principle: the planner only proposes tool calls; the capability
gateway validates and enforces every limit.
"""
