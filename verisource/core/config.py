"""Configuration management for the verisource pipeline."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when a backend is used without the credentials it needs.

    Configuration errors are fatal: they surface immediately to the caller
    and are never retried.
    """

    pass


class LLMConfig(BaseModel):
    """Configuration for a specific LLM purpose.

    Attributes:
        model: Model identifier (e.g., 'gpt-4o-mini')
        temperature: Sampling temperature (0.0-2.0)
        max_tokens: Maximum tokens to generate (1-32000)
        timeout: Request timeout in seconds (1-600)
    """

    model: str = Field(..., description="Model identifier")
    temperature: float = Field(..., ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(..., ge=1, le=32000, description="Maximum tokens to generate")
    timeout: float = Field(..., ge=1, le=600, description="Request timeout (seconds)")

    model_config = {"frozen": True}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Brave Search (web search backend)
    BRAVE_SEARCH_API_KEY: str | None = Field(default=None, description="Brave Search API key")
    BRAVE_SEARCH_BASE_URL: str = Field(
        default="https://api.search.brave.com", description="Brave Search API base URL"
    )
    SEARCH_COUNTRY: str = Field(default="CA", description="Regional bias sent with searches")
    SEARCH_TIMEOUT: float = Field(
        default=15.0, ge=1.0, le=120.0, description="Search request timeout (seconds)"
    )
    SEARCH_CONTEXT_TERMS: str = Field(
        default="Canada", description="Terms appended to topically adjacent queries"
    )
    SEARCH_TOPIC_KEYWORDS: list[str] = Field(
        default_factory=lambda: [
            "tax",
            "cra",
            "income",
            "deduction",
            "credit",
            "rrsp",
            "tfsa",
            "gst",
            "hst",
            "capital gains",
            "corporation",
            "payroll",
            "benefit",
        ],
        description="Keywords that mark a query as topically adjacent",
    )

    # OpenAI (text generation backend)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    OPENAI_BASE_URL: str = Field(
        default="https://api.openai.com/v1", description="OpenAI-compatible API base URL"
    )
    LLM_MAX_RETRIES: int = Field(
        default=2, ge=0, le=10, description="Retries inside the LLM client per call"
    )
    LLM_CIRCUIT_BREAKER_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Failures before circuit breaker opens"
    )
    LLM_CIRCUIT_BREAKER_TIMEOUT: int = Field(
        default=120, ge=10, le=3600, description="Seconds before circuit breaker retry"
    )
    ENABLE_LLM_FALLBACK: bool = Field(
        default=True, description="Return an empty completion instead of raising when the LLM is down"
    )

    PLANNING_LLM_MODEL: str = Field(default="gpt-4o-mini", description="Query planning model")
    PLANNING_LLM_TEMPERATURE: float = Field(default=0.2, ge=0.0, le=2.0)
    PLANNING_LLM_MAX_TOKENS: int = Field(default=250, ge=1, le=4096)
    PLANNING_LLM_TIMEOUT: float = Field(default=20.0, ge=1, le=600)

    SCORING_LLM_MODEL: str = Field(default="gpt-4o-mini", description="Relevance/authority model")
    SCORING_LLM_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)
    SCORING_LLM_MAX_TOKENS: int = Field(default=10, ge=1, le=256)
    SCORING_LLM_TIMEOUT: float = Field(default=15.0, ge=1, le=600)

    ANSWER_LLM_MODEL: str = Field(default="gpt-4o", description="Answer generation model")
    ANSWER_LLM_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)
    ANSWER_LLM_MAX_TOKENS: int = Field(default=2048, ge=1, le=32000)
    ANSWER_LLM_TIMEOUT: float = Field(default=120.0, ge=1, le=600)

    # Verification / extraction
    VERIFY_TIMEOUT: float = Field(default=10.0, ge=1.0, le=60.0, description="HEAD request timeout")
    VERIFY_GET_FALLBACK_TIMEOUT: float = Field(
        default=8.0, ge=1.0, le=60.0, description="Ranged GET fallback timeout"
    )
    TITLE_FETCH_TIMEOUT: float = Field(
        default=5.0, ge=1.0, le=60.0, description="Title-only fetch timeout"
    )
    EXTRACT_TIMEOUT: float = Field(default=10.0, ge=1.0, le=60.0, description="Content fetch timeout")
    CONTENT_MAX_CHARS: int = Field(default=2000, ge=100, description="Stored content cap")
    CONTENT_MAX_BYTES: int = Field(
        default=2_000_000, ge=10_000, description="Maximum bytes read from a page"
    )
    MAX_CONCURRENT_VERIFICATIONS: int = Field(
        default=8, ge=1, le=64, description="Candidate chains evaluated at once"
    )

    # Aggregation thresholds
    MIN_CONTENT_QUALITY: float = Field(default=20.0, ge=0.0, le=100.0)
    MIN_RELEVANCE_SCORE: int = Field(default=20, ge=0, le=100)
    MIN_AUTHORITY_SCORE: int = Field(default=10, ge=0, le=100)
    MIN_COMPOSITE_SCORE: int = Field(default=40, ge=0, le=100)
    RELEVANCE_WEIGHT: float = Field(default=0.4, ge=0.0, le=1.0)
    AUTHORITY_WEIGHT: float = Field(default=0.2, ge=0.0, le=1.0)
    QUALITY_WEIGHT: float = Field(default=0.4, ge=0.0, le=1.0)

    # Source finding
    DEFAULT_SOURCE_COUNT: int = Field(default=8, ge=1, le=20)
    FALLBACK_SEARCH_COUNT: int = Field(default=4, ge=1, le=20)
    MIN_SOURCES_BEFORE_DIRECT_SEARCH: int = Field(
        default=3, ge=0, le=20, description="Below this many sources, retry with the raw query"
    )
    MIN_SOURCES_BEFORE_SIMPLIFIED_SEARCH: int = Field(
        default=2, ge=0, le=20, description="Below this many sources, retry with a simplified query"
    )

    # Citations
    MIN_CITATIONS: int = Field(default=2, ge=0, le=20)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8001, description="API port")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format (json/console)")

    DEBUG: bool = Field(default=False, description="Debug mode")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @property
    def planning_llm_config(self) -> LLMConfig:
        """LLM configuration for query planning."""
        return LLMConfig(
            model=self.PLANNING_LLM_MODEL,
            temperature=self.PLANNING_LLM_TEMPERATURE,
            max_tokens=self.PLANNING_LLM_MAX_TOKENS,
            timeout=self.PLANNING_LLM_TIMEOUT,
        )

    @property
    def scoring_llm_config(self) -> LLMConfig:
        """LLM configuration for relevance and authority scoring."""
        return LLMConfig(
            model=self.SCORING_LLM_MODEL,
            temperature=self.SCORING_LLM_TEMPERATURE,
            max_tokens=self.SCORING_LLM_MAX_TOKENS,
            timeout=self.SCORING_LLM_TIMEOUT,
        )

    @property
    def answer_llm_config(self) -> LLMConfig:
        """LLM configuration for streamed answer generation."""
        return LLMConfig(
            model=self.ANSWER_LLM_MODEL,
            temperature=self.ANSWER_LLM_TEMPERATURE,
            max_tokens=self.ANSWER_LLM_MAX_TOKENS,
            timeout=self.ANSWER_LLM_TIMEOUT,
        )


# Global settings instance
settings = Settings()
