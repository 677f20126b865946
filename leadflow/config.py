from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./leadflow.db"
    log_level: str = "INFO"

    # Evolution API gateway
    evolution_api_url: str = ""
    evolution_api_key: str = ""
    evolution_instance: str = "DiegoWoo"
    gateway_timeout_seconds: float = 15.0

    # Human operator who owns the contacts
    admin_whatsapp: str = "351927398547"
    human_handler_name: str = "Rafa"

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    question_rewrite_enabled: bool = True

    # FAQ backend (ia-app)
    faq_backend_url: str = "http://localhost:3000"
    faq_backend_timeout_seconds: float = 10.0
    upload_base_url: str = "https://ia.rafaapelomundo.com"

    faq_match_threshold: float = 0.78
    faq_duplicate_threshold: float = 0.82

    welcome_trigger_phrase: str = "Ola, gostaria de ajuda para conseguir meu credito habitação em portugal"
    direct_trigger_phrase: str = "Ola, gostaria de falar com a Joana sobre credito habitação"
    operator_release_phrases: str = "boa sorte,boa sorte!"
    operator_pause_phrases: str = "assumo daqui,pausar bot"

    question_reminder_seconds: float = 60.0
    question_min_length: int = 3
    max_questions_per_contact: int = 20
    navigation_reminder_every: int = 3

    delayed_queue_enabled: bool = True
    delayed_queue_poll_seconds: float = 12.0
    delayed_queue_batch_size: int = 20
    welcome_step_offsets: str = "15,20,90,110"
    welcome_audio_path: str = "audio/boas-vindas.ogg"
    handoff_auto_release_hours: float = 24.0

    media_signing_secret: str = ""
    media_storage_dir: str = "./media"
    public_base_url: str = "http://localhost:3000"
    media_url_ttl_seconds: int = 3600

    internal_secret: str = ""
    session_idle_ttl_seconds: int = 6 * 3600

    alert_bot_token: str = ""
    alert_chat_id: str = ""

    simulator_annual_rate: float = 0.035

    class Config:
        env_file = ".env"
        extra = "ignore"

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Settings":
        for name in ("faq_match_threshold", "faq_duplicate_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.faq_duplicate_threshold < self.faq_match_threshold:
            raise ValueError(
                "faq_duplicate_threshold must be >= faq_match_threshold "
                f"({self.faq_duplicate_threshold} < {self.faq_match_threshold})"
            )
        offsets = self.welcome_offsets()
        if any(offset <= 0 for offset in offsets):
            raise ValueError("welcome_step_offsets must be positive")
        if any(later <= earlier for earlier, later in zip(offsets, offsets[1:])):
            raise ValueError("welcome_step_offsets must be strictly increasing")
        return self

    def welcome_offsets(self) -> list[float]:
        return [float(part) for part in self.welcome_step_offsets.split(",") if part.strip()]

    def release_phrases(self) -> list[str]:
        return _split_phrases(self.operator_release_phrases)

    def pause_phrases(self) -> list[str]:
        return _split_phrases(self.operator_pause_phrases)


def _split_phrases(raw: str) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


APP_NAME = "leadflow-api"

settings = Settings()
