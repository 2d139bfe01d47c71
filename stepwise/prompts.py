from __future__ import annotations

from functools import lru_cache
from pathlib import Path


class PromptLoadError(RuntimeError):
    pass


def prompts_dir() -> Path:
    # stepwise/prompts.py -> stepwise/ -> project root -> prompts/
    return Path(__file__).resolve().parents[1] / "prompts"


def available_prompts() -> list[str]:
    return sorted(p.name for p in prompts_dir().glob("*.txt"))


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Return the text of `prompts/<name>`, normalised to end with one newline.

    Prompt files are read once per process. Only bare `*.txt` names are accepted.
    """

    if Path(name).name != name or not name.endswith(".txt"):
        raise PromptLoadError(f"Invalid prompt name: {name!r}")

    path = prompts_dir() / name
    try:
        text = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e
    if not text:
        raise PromptLoadError(f"Prompt is empty: {path}")
    return text + "\n"
