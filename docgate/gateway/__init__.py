"""Secure transformation gateway -- hardened prompt, generator interface, orchestration."""

from .generator import AnthropicGenerator, StaticGenerator, TextGenerator
from .prompt import SYSTEM_PROMPT, PromptDocument, build_prompt, render_documents
from .secure_gateway import (
    GENERATOR_RESOURCE,
    GatewayResult,
    GenerationMetadata,
    GenerationRequest,
    SecureGateway,
)

__all__ = [
    "AnthropicGenerator",
    "GENERATOR_RESOURCE",
    "GatewayResult",
    "GenerationMetadata",
    "GenerationRequest",
    "PromptDocument",
    "SYSTEM_PROMPT",
    "SecureGateway",
    "StaticGenerator",
    "TextGenerator",
    "build_prompt",
    "render_documents",
]
