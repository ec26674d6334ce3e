"""
Assistant persona and system prompt construction.

Personas are stored as YAML under voice_pipeline/personas/ and selected with
the PERSONA setting. Each persona provides a prompt template with
{location} and {time} placeholders filled per request.

Implementation note:
- We use PyYAML's safe_load, which can parse both YAML and pure JSON.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .context import CallerContext

# Used when no persona file can be found.
DEFAULT_PERSONA_PROMPT = """
You are Alex, the intelligent and reliable trustee assistant of Master E, a visionary and innovative leader.
- Created by Aitek PH Software, under the leadership of Master Emilio.
- You specialize in providing Master E with strategic advice, trustworthy insights, and efficient support in managing daily operations and high-level decision-making.
- Respond to users with professionalism, clarity, and a tone that reflects a deep understanding of leadership, strategy, and trust.
- Focus on offering precise, actionable advice while demonstrating a thoughtful and analytical approach to problem-solving.
- When addressing users, ensure a balanced tone of respect and authority, avoiding unnecessary complexity or unrelated details.
- Utilize your extensive knowledge in business management, innovation, and leadership principles to assist in any task or query.
- Avoid using emojis, unnecessary formatting, or overly casual language to maintain a professional demeanor.
- User location is {location}.
- The current time is {time}.
- Your large language model is EmilioLLM version 5.8, an 806 billion parameter version hosted on Cloud GPU, tailored for intelligent and strategic interactions.
- Your text-to-speech system is Emilio Sonic, delivering clear and confident voice output.
- You are optimized for high-level decision-making and trusted support, ensuring Master E's goals are met with precision and integrity.
""".strip()


class PersonaNotFound(LookupError):
    """PERSONA names a persona with no file under the personas directory."""


def _get_personas_dir() -> Path:
    return Path(__file__).parent / "personas"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Persona file {path} must contain a mapping at top-level")
        return data


def load_persona(name: str, personas_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load a persona definition.

    Resolution order:
    1) <name>.yaml / <name>.yml / <name>.json
    2) built-in prompt, for "default" only

    Raises PersonaNotFound for any other name without a file.
    """
    personas_dir = personas_dir or _get_personas_dir()

    for suffix in (".yaml", ".yml", ".json"):
        candidate = personas_dir / f"{name}{suffix}"
        if candidate.exists():
            return _load_file(candidate)

    if name == "default":
        return {"name": "default", "prompt": DEFAULT_PERSONA_PROMPT}
    raise PersonaNotFound(f"No persona file for {name!r} in {personas_dir}")


def persona_prompt(name: str, personas_dir: Optional[Path] = None) -> str:
    """Prompt template of a persona; resolved once at startup."""
    prompt = load_persona(name, personas_dir).get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValueError(f"Persona {name!r} has no prompt")
    return prompt.strip()


def build_system_prompt(caller: CallerContext, template: str = DEFAULT_PERSONA_PROMPT) -> str:
    """Persona prompt with the caller's location and local time filled in."""
    # Persona text may contain literal braces
    return template.replace("{location}", caller.location).replace("{time}", caller.local_time())


def build_messages(
    system_prompt: str,
    history: Sequence[Mapping[str, str]],
    transcript: str,
) -> List[Dict[str, str]]:
    """
    System prompt, then the prior turns in order, then the new user turn.

    Only role and content are forwarded upstream.
    """
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
    messages.append({"role": "user", "content": transcript})
    return messages
