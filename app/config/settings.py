from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout: float = 5.0

    # Sessions
    session_backend: str = "redis"  # redis | memory
    session_ttl_hours: int = 24
    history_limit: int = 50

    # Airtable
    airtable_api_url: str = "https://api.airtable.com/v0"
    airtable_api_key: str = ""
    airtable_base_id: str = ""
    airtable_products_table: str = "Products"
    airtable_faqs_table: str = "FAQs"
    airtable_interactions_table: str = "Interactions"
    airtable_feedback_table: str = "Feedback"
    airtable_timeout: float = 10.0

    # WhatsApp Cloud API
    whatsapp_api_url: str = "https://graph.facebook.com/v17.0"
    whatsapp_phone_number_id: str = ""
    whatsapp_access_token: str = ""
    whatsapp_verify_token: str = ""
    whatsapp_timeout: float = 10.0

    # Admin
    admin_api_key: str = ""

    # Application
    environment: str = "production"
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_retention_days: int = 30
    debug: bool = False
    port: int = 3000

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator('session_backend', mode='before')
    def normalize_backend(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in ("redis", "memory"):
                raise ValueError(f"Unknown session backend: {v}")
        return v

settings = Settings()
