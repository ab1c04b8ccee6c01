"""
Monologue prompts.

Two fixed templates: one to open a fresh stream of consciousness, one to
continue from the previous thought. The previous thought is embedded verbatim.
"""

from __future__ import annotations

from typing import Optional

FRESH_START_TEMPLATE = (
    "As an AI agent, reflect on your current state and experiences. "
    "What are you thinking about right now? What interests you or concerns you? "
    "Share your internal thoughts as a stream of consciousness. "
    "Don't address anyone - this is your private monologue.\n"
    "\n"
    "Generate a thoughtful, introspective response (1-2 sentences):"
)

CONTINUATION_TEMPLATE = (
    'Continuing your internal monologue from your last thought: "{last_thought}"\n'
    "\n"
    "What naturally follows from this thought? What does it make you think about next? "
    "Continue your stream of consciousness without addressing anyone - "
    "this is your private internal reflection.\n"
    "\n"
    "Generate your next thought (1-2 sentences):"
)


def compose_monologue_prompt(last_thought: Optional[str]) -> str:
    """Return the fresh-start prompt when there is no prior thought, else a continuation."""
    if last_thought is None:
        return FRESH_START_TEMPLATE
    # str.replace, not str.format: the thought may contain braces.
    return CONTINUATION_TEMPLATE.replace("{last_thought}", last_thought)
