"""Shared dependencies for the code generation routes."""

from typing import Annotated

from fastapi import Depends

from services.codegen.generator import CodeGenerator
from services.codegen.registry import ConversationRegistry, get_conversation_registry


Registry = Annotated[ConversationRegistry, Depends(get_conversation_registry)]


def get_code_generator(registry: Registry) -> CodeGenerator:
    return registry.generator


Generator = Annotated[CodeGenerator, Depends(get_code_generator)]
