"""Chat message templates for code generation requests."""

from services.codegen.model_client import ChatMessage


USER_PROMPT_PREFIX = "Generate code for: "


def build_messages(prompt: str, system_prompt: str | None = None) -> list[ChatMessage]:
    """Wrap a trimmed user prompt in the system + user message pair."""
    messages: list[ChatMessage] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": f"{USER_PROMPT_PREFIX}{prompt}"})
    return messages
