"""
Text Generation Backend

Wraps the OpenAI chat completions API as the engine's generate(prompt) capability.
The fast default model handles free-form dialogue; the accurate model is used
for practice question generation.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from learning_path_tutor.errors import BackendCallError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_ACCURATE_MODEL = "gpt-4o"


class OpenAIGenerator:
    """
    generate(prompt, accurate=False) -> text, backed by AsyncOpenAI.

    Args:
        api_key: OpenAI API key
        model: Fast default model
        accurate_model: Higher-accuracy model
        client: Pre-built AsyncOpenAI client (optional)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        accurate_model: str = DEFAULT_ACCURATE_MODEL,
        client: Optional[AsyncOpenAI] = None
    ):
        if client is None:
            if not api_key:
                raise ValueError("OPENAI_API_KEY not found in environment variables")
            client = AsyncOpenAI(api_key=api_key)
        self.llm_client = client
        self.model = model
        self.accurate_model = accurate_model

    async def generate(self, prompt: str, accurate: bool = False) -> str:
        """
        Send one prompt and return the reply text.

        Raises:
            BackendCallError: if the API call fails or returns no text
        """
        model = self.accurate_model if accurate else self.model
        try:
            response = await self.llm_client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            logger.error(f"❌ [OpenAIGenerator] {model} call failed: {e}")
            raise BackendCallError(str(e)) from e

        if not response.choices or response.choices[0].message.content is None:
            raise BackendCallError(f"{model} returned an empty response")
        content = response.choices[0].message.content
        logger.debug(f"🤖 [OpenAIGenerator] {model} returned {len(content)} chars")
        return content
