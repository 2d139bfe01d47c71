from __future__ import annotations

import os
from dataclasses import dataclass, field


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r})") from e


@dataclass(frozen=True, slots=True)
class Settings:
    # Game feedback windows before the stepper advances / resets.
    correct_delay_ms: int = 1000
    incorrect_delay_ms: int = 500

    # Exit-animation hint for clients; not part of the state machine.
    settle_ms: int = 300

    # How long the "quiz could not be prepared" message stays up before going home.
    quiz_failure_return_ms: int = 3000

    # Sessions untouched for this long are closed by the idle sweeper.
    session_idle_ttl_s: int = 1800
    session_sweep_interval_s: int = 60

    events_stream: str = "stepwise:events"

    model: str = "gpt-4o-mini"
    vision_model: str = "gpt-4o"

    # For Ollama, typically http://127.0.0.1:11434/v1
    openai_base_url: str | None = None
    openai_api_key: str | None = field(default=None, repr=False)

    @property
    def correct_delay_s(self) -> float:
        return self.correct_delay_ms / 1000

    @property
    def incorrect_delay_s(self) -> float:
        return self.incorrect_delay_ms / 1000

    @property
    def quiz_failure_return_s(self) -> float:
        return self.quiz_failure_return_ms / 1000


def settings_from_env() -> Settings:
    return Settings(
        correct_delay_ms=_int_env("STEPWISE_CORRECT_DELAY_MS", 1000),
        incorrect_delay_ms=_int_env("STEPWISE_INCORRECT_DELAY_MS", 500),
        settle_ms=_int_env("STEPWISE_SETTLE_MS", 300),
        quiz_failure_return_ms=_int_env("STEPWISE_QUIZ_FAILURE_RETURN_MS", 3000),
        session_idle_ttl_s=_int_env("STEPWISE_SESSION_IDLE_S", 1800),
        session_sweep_interval_s=_int_env("STEPWISE_SESSION_SWEEP_S", 60),
        events_stream=os.environ.get("STEPWISE_EVENTS_STREAM", "stepwise:events"),
        model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
        vision_model=os.environ.get("OPENAI_VISION_MODEL", "gpt-4o"),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
    )
