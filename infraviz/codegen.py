import logging
import re
from typing import Optional

from google import genai
from google.genai import types

from infraviz.config import Settings, get_settings
from infraviz.errors import CodeGenerationError
from infraviz.prompts.pulumi import SYSTEM_PROMPT, get_generate_prompt, get_update_prompt

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```(?:typescript|ts|javascript|js)?\n?", re.MULTILINE)
_CLOSING_FENCE = re.compile(r"\n?```$", re.MULTILINE)


def strip_code_fences(code: str) -> str:
    code = _OPENING_FENCE.sub("", code, count=1)
    code = _CLOSING_FENCE.sub("", code, count=1)
    return code.strip()


class PulumiCodeGenerator:
    """Writes and rewrites Pulumi TypeScript programs with Gemini."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[genai.Client] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.settings.gemini_api_key:
                raise CodeGenerationError("GEMINI_API_KEY environment variable is not set")
            self._client = genai.Client(api_key=self.settings.gemini_api_key)
        return self._client

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.settings.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    temperature=0.1,
                    max_output_tokens=4096,
                ),
            )
        except CodeGenerationError:
            raise
        except Exception as e:
            logger.error("Code generation call failed: %s", e)
            raise CodeGenerationError(f"Code generation failed: {e}") from e

        text = response.text
        if not text:
            raise CodeGenerationError("Code generation returned an empty response (safety block?)")
        return strip_code_fences(text)

    async def generate(self, description: str) -> str:
        return await self._complete(get_generate_prompt(description))

    async def update(self, existing_code: str, change_description: str) -> str:
        return await self._complete(get_update_prompt(existing_code, change_description))
