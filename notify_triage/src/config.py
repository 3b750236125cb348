import os
# The environment (.env included) is loaded once by the logger module
from notify_triage.src.logger import logger


class Config:
    """A centralized configuration class to load and manage settings from environment variables."""
    def __init__(self):
        """Initializes the configuration by loading values from the environment."""
        self.model_provider = os.getenv('MODEL_PROVIDER', 'google').lower()
        self.llm_model_name = os.getenv('LLM_MODEL_NAME', 'gemini-2.5-flash')
        self.temperature = float(os.getenv('TEMPERATURE', 0))
        self.google_api_key = os.getenv('GOOGLE_API_KEY')
        self.openai_api_key = os.getenv('OPENAI_API_KEY')
        self.openai_base_url = os.getenv('OPENAI_BASE_URL')
        self.anthropic_api_key = os.getenv('ANTHROPIC_API_KEY')
        # Per-call timeout of the AI evaluator
        self.llm_timeout_seconds = float(os.getenv('LLM_TIMEOUT_SECONDS', 8))
        self.default_importance_threshold = int(os.getenv('DEFAULT_IMPORTANCE_THRESHOLD', 7))
        self.max_messages_per_batch = int(os.getenv('MAX_MESSAGES_PER_BATCH', 50))
        self.max_body_chars = int(os.getenv('MAX_BODY_CHARS', 4000))


# Create a singleton instance of the Config class to be used throughout the application.
config = Config()
logger.info("Configuration singleton instance loaded successfully.")
