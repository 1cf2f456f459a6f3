"""
Integrations Module - External System Adapters
==============================================

Each adapter implements one protocol from :mod:`models.protocols` and wraps
its library's exceptions into the DispatchError hierarchy.

Modules:
    discord_client: ChatClient over discord.py plus the gateway client
    openai_backend: CompletionBackend over the AsyncOpenAI client
    context_store: ContextStore over a DynamoDB table (boto3)
    asset_store: AssetStore over httpx downloads and S3 uploads (boto3)
"""
