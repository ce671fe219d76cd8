"""Agent configuration: backend endpoints, LLM selection and tuning knobs."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "DIAG_"}

    # LLM
    llm_provider: str = "anthropic"
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_model: str = "claude-3-5-sonnet-latest"
    extraction_temperature: float = 0.0
    summary_temperature: float = 0.2

    # Log search (Datadog)
    datadog_api_key: str = ""
    datadog_app_key: str = ""
    datadog_site: str = "datadoghq.com"
    log_search_limit: int = 500
    log_top_n: int = 5

    # Entity backends; "{tier}" is replaced with prod / qa / dev
    history_url_template: str = "http://datamanager-{tier}.internal/history"
    history_limit: int = 10
    catalog_url_template: str = "https://catalog-{tier}.internal/graphql"
    catalog_api_token: str = ""
    offer_service_url_template: str = "https://offer-service-{tier}.internal/graphql"
    pricing_url_template: str = "https://pricing-{tier}.internal/v3/offer/price"
    storefront_country: str = "US"
    caller_client_id: str = "entity-diagnostic-agent"

    # Evidence fetch limits
    backend_http_timeout_seconds: float = 15.0
    fetch_timeout_seconds: float = 30.0

    # Storage
    redis_url: str = "redis://redis:6379/0"
    session_backend: str = "redis"
    case_store_backend: str = "redis"
    session_ttl_seconds: int = 86400

    # Case memory
    similar_case_limit: int = 5
    case_index_enabled: bool = True
    chroma_persist_dir: str = "/opt/agent/chroma"
    case_index_max_distance: float = 0.3

    # Agent server
    host: str = "0.0.0.0"
    port: int = 8100


settings = Settings()
