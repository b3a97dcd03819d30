from dataclasses import dataclass
import os


def _get_env(name: str, default: str | None = None, required: bool = False) -> str:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        if default is not None:
            return default
        if required:
            raise ValueError(f"{name} is required")
        return ""
    return value


def _get_bool(name: str, default: str = "false") -> bool:
    return _get_env(name, default).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    openai_chat_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 10.0
    use_llm_phrasing: bool = False
    flow_api_key: str = ""
    session_ttl_seconds: int = 30 * 60
    max_sessions: int = 1000
    max_history: int = 100
    history_window: int = 50
    sweep_interval_seconds: int = 5 * 60
    max_answer_chars: int = 1000
    conf_high: float = 0.8
    conf_medium: float = 0.5
    max_clarifications: int = 2
    helpdesk_url: str = ""
    helpdesk_api_key: str = ""


def load_settings() -> Settings:
    settings = Settings(
        openai_api_key=_get_env("OPENAI_API_KEY", ""),
        openai_chat_model=_get_env("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        llm_timeout_seconds=float(_get_env("LLM_TIMEOUT_SECONDS", "10")),
        use_llm_phrasing=_get_bool("USE_LLM_PHRASING"),
        flow_api_key=_get_env("FLOW_API_KEY", ""),
        session_ttl_seconds=int(_get_env("SESSION_TTL_SECONDS", "1800")),
        max_sessions=int(_get_env("MAX_SESSIONS", "1000")),
        max_history=int(_get_env("MAX_HISTORY", "100")),
        history_window=int(_get_env("HISTORY_WINDOW", "50")),
        sweep_interval_seconds=int(_get_env("SWEEP_INTERVAL_SECONDS", "300")),
        max_answer_chars=int(_get_env("MAX_ANSWER_CHARS", "1000")),
        conf_high=float(_get_env("CONF_HIGH", "0.8")),
        conf_medium=float(_get_env("CONF_MEDIUM", "0.5")),
        max_clarifications=int(_get_env("MAX_CLARIFICATIONS", "2")),
        helpdesk_url=_get_env("HELPDESK_URL", ""),
        helpdesk_api_key=_get_env("HELPDESK_API_KEY", ""),
    )
    if not 0.0 <= settings.conf_medium <= settings.conf_high <= 1.0:
        raise ValueError("CONF_MEDIUM and CONF_HIGH must satisfy 0 <= medium <= high <= 1")
    if settings.history_window >= settings.max_history:
        raise ValueError("HISTORY_WINDOW must be smaller than MAX_HISTORY")
    return settings
