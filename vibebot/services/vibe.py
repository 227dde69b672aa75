from __future__ import annotations

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from ..utils.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

VIBE_PROMPT = """You are a creative UX/UI designer helping a participant named {name} expand their project idea into a comprehensive "vibe code" specification.

Based on their project idea: "{project_idea}"
Experience level: {experience}

Generate a detailed vibe code specification following this exact format:

**Core Purpose:** [One clear sentence describing what they're building]

**Visual Vibe:**
- [4-6 specific visual/aesthetic descriptions using vivid language]
- [Include colors, typography, animations, layouts]
- [Make it inspiring and concrete, not generic]

**Core Features:**
- [5-7 key functional requirements]
- [Be specific but not overly technical]
- [Focus on user-facing features]

**Interaction Style:**
- [3-5 descriptions of how it should feel to use]
- [Include animation timing, feedback, responsiveness]

**Technical Constraints:**
- [3-4 practical constraints based on their experience level]
- [If beginner: suggest simpler tech stack]
- [If experienced: can be more ambitious]

**Reference Vibes:**
- [3-4 comparisons to existing products/designs]
- [Use format "X's Y but more Z"]

Guidelines:
1. Be specific with adjectives - avoid "clean" or "modern"
2. Describe feelings and emotions the app should evoke
3. Match technical complexity to their experience level
4. Make it inspirational but achievable
5. Use evocative, creative language
6. If their idea is vague, intelligently expand it with creative details

Make this feel like a professional creative brief that would excite them to build it."""


def build_vibe_prompt(name: str, project_idea: str, has_experience: bool = False, tools_used: Optional[str] = None) -> str:
    if has_experience:
        experience = f"Yes - Tools used: {tools_used or 'Not specified'}"
    else:
        experience = "No previous experience"
    return VIBE_PROMPT.format(name=name, project_idea=project_idea, experience=experience)


class VibeGenerator:
    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: Optional[AsyncOpenAI] = None):
        self.model = model
        if client is None and api_key:
            client = AsyncOpenAI(api_key=api_key)
        self.client = client

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def generate(self, prompt: str) -> str:
        if self.client is None:
            raise ConfigurationError("AI service not configured")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.7,
            )
        except OpenAIError as exc:
            logger.error("OpenAI API error: %s", exc)
            raise UpstreamError("Failed to generate vibe code") from exc
        return response.choices[0].message.content or ""
