"""
Reverie — Autonomous Monologue Loop

This package keeps an agent thinking when nobody is talking to it. A
self-chaining loop periodically asks the agent's own message pipeline for the
next thought of its internal monologue, waits for the pipeline to store a
response, and broadcasts that response to whoever is watching.

Layers (bottom to top):
    1. Runtime boundary (settings store, memory log, message pipeline)
    2. Dedicated context (isolated world + room for autonomous thoughts)
    3. Continuity + prompt composition
    4. Submission, harvesting and publishing
    5. Lifecycle loop with level-triggered reconciliation
    6. Service wiring + control API
"""

__version__ = "0.1.0"
