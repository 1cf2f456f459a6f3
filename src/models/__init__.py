"""
Models Module - Data Models and Type Definitions
=================================================

Modules:
    conversation: Turns, inbound messages, routing intents and the dispatch envelope
    error_models: DispatchError hierarchy with stable error codes
    protocols: Structural interfaces of the external collaborators

Turns and base prompt messages are Pydantic v2 models (validated when read
from storage or disk); per-dispatch values are frozen dataclasses.
"""
