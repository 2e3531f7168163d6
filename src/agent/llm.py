"""LLM factory — creates the chat model that backs every completion call.

The debate core only relies on the text-in/text-out contract of
``BaseChatModel`` (``ainvoke`` for blocking calls, ``astream`` for streaming),
so any provider LangChain supports can be dropped in here.
"""

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from src.config import Settings

SUPPORTED_PROVIDERS = ("openai", "anthropic")


def create_anthropic_chat(
    api_key: str,
    model: str,
    temperature: float,
    max_tokens: int,
) -> ChatAnthropic:
    """Create a ChatAnthropic instance."""
    return ChatAnthropic(  # pyright: ignore[reportCallIssue]
        model=model,  # pyright: ignore[reportCallIssue]
        temperature=temperature,
        max_tokens=max_tokens,  # pyright: ignore[reportCallIssue]
        api_key=SecretStr(api_key),
    )


def is_llm_configured(settings: Settings) -> bool:
    """Check whether the active provider has an API key."""
    if settings.llm_provider == "anthropic":
        return bool(settings.anthropic_api_key)
    return bool(settings.openai_api_key)


def create_llm(
    settings: Settings,
    temperature: float | None = None,
    model_override: str | None = None,
) -> BaseChatModel:
    """Create a chat model instance based on the configured provider.

    Args:
        settings: Application settings (provider, keys, model names).
        temperature: LLM temperature. Defaults to ``settings.llm_temperature``.
        model_override: Override model name from settings.

    Returns:
        A ChatAnthropic or ChatOpenAI instance.

    Raises:
        ValueError: If the provider is unknown or its API key is missing.
    """
    if settings.llm_provider not in SUPPORTED_PROVIDERS:
        msg = f"Unsupported LLM_PROVIDER '{settings.llm_provider}' (expected one of {SUPPORTED_PROVIDERS})"
        raise ValueError(msg)
    if not is_llm_configured(settings):
        msg = f"No API key configured for LLM provider '{settings.llm_provider}'"
        raise ValueError(msg)

    if temperature is None:
        temperature = settings.llm_temperature

    if settings.llm_provider == "anthropic":
        return create_anthropic_chat(
            api_key=settings.anthropic_api_key,
            model=model_override or settings.anthropic_model,
            temperature=temperature,
            max_tokens=1024,
        )

    return ChatOpenAI(
        model=model_override or settings.openai_model,
        temperature=temperature,
        api_key=SecretStr(settings.openai_api_key),
        base_url=settings.openai_base_url or None,
    )


def message_text(message: BaseMessage) -> str:
    """Flatten a model message into plain text.

    Anthropic models may return a list of content blocks instead of a string;
    only the text blocks are kept.
    """
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)
