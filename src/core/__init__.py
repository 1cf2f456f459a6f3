"""
Core Application Layer - Dispatch and Conversation Logic
========================================================

Provides the business logic of danbot: routing, thread resolution,
completions with retries and the image delivery pipeline.

Modules:
    constants: Markers, platform limits and Pydantic settings validation
    prompts: Base prompt loading
    router: Marker-based intent routing
    thread_manager: Thread creation and context loading
    completion: Text completions with bounded retries
    image_pipeline: Context scans and dual image delivery
    dispatcher: Per-message orchestration and failure notices

Key Components:

Dispatcher (dispatcher.py):
    Runs one task per qualifying message. Resolves the thread, routes the
    sanitized text and runs the matching handler. It is the only component
    that reports failures back to the chat.

Image Pipeline (image_pipeline.py):
    Streams one downloaded image to the chat and to the asset store at the
    same time; the archive upload runs in the background.

See Also:
    :mod:`integrations`: Discord, OpenAI, DynamoDB and S3 adapters
    :mod:`models.protocols`: Interfaces the core depends on
"""
