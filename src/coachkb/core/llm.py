"""OpenAI chat helpers returning schema-validated JSON objects."""

import os
import json
import logging
from typing import Optional, Type, TypeVar

import openai
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from .exceptions import ConfigurationError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_MODEL = "gpt-4o"

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_openai_client() -> openai.OpenAI:
    """Create an OpenAI client from the environment."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ConfigurationError("OpenAI API key not found in environment variables")
    return openai.OpenAI(api_key=api_key)


def get_completion_model() -> str:
    """Model used for quality and contradiction review."""
    return os.getenv("QUALITY_MODEL", DEFAULT_COMPLETION_MODEL)


def _schema_instructions(schema: Type[BaseModel]) -> str:
    return (
        "Respond with a single JSON object that validates against this JSON schema:\n"
        f"{json.dumps(schema.model_json_schema(), indent=2)}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=4, max=10),
    reraise=True
)
def _create_structured_completion(
    client: openai.OpenAI,
    schema: Type[ModelT],
    system_prompt: str,
    user_prompt: str,
    model: str,
    temperature: float
) -> ModelT:
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": f"{system_prompt}\n\n{_schema_instructions(schema)}"},
            {"role": "user", "content": user_prompt}
        ],
        temperature=temperature,
        response_format={"type": "json_object"}
    )

    raw = response.choices[0].message.content or "{}"
    try:
        return schema.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"{schema.__name__} response failed validation: {e}")
        raise


def complete_json(
    schema: Type[ModelT],
    system_prompt: str,
    user_prompt: str,
    client: Optional[openai.OpenAI] = None,
    model: Optional[str] = None,
    temperature: float = 0.2
) -> ModelT:
    """
    Run one chat completion and validate its JSON answer into ``schema``.

    API errors and invalid answers are retried up to three times.

    Args:
        schema: Pydantic model the answer must validate against
        system_prompt: Role and rubric for the model
        user_prompt: Content to judge
        client: OpenAI client (created from the environment when omitted)
        model: Model name (defaults to QUALITY_MODEL or gpt-4o)
        temperature: Sampling temperature

    Returns:
        Validated schema instance
    """
    client = client or get_openai_client()
    return _create_structured_completion(
        client,
        schema,
        system_prompt,
        user_prompt,
        model or get_completion_model(),
        temperature
    )
