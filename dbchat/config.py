from pydantic import BaseModel
from dotenv import load_dotenv
import os

# Load environment variables from .env file
load_dotenv()

class Settings(BaseModel):
    # LLM gateway (chat completions style, bearer auth)
    llm_api_url: str = os.getenv("LLM_API_URL", "https://router.huggingface.co/v1/chat/completions")
    llm_api_key: str = os.getenv("LLM_API_KEY", os.getenv("API_KEY", ""))
    llm_model: str = os.getenv("LLM_MODEL", "openai/gpt-oss-120b:groq")
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))
    llm_max_attempts: int = int(os.getenv("LLM_MAX_ATTEMPTS", "3"))

    # Image generation
    image_api_url: str = os.getenv("IMAGE_API_URL", "https://router.huggingface.co/nebius/v1/images/generations")
    image_model: str = os.getenv("IMAGE_MODEL", "sd-legacy/stable-diffusion-v1-5")

    # Credential codec (AES-256-CBC, base64 key + IV shared with the UI)
    secret_key_b64: str = os.getenv("SECRET_KEY_B64", "seLzpMXW5/ipsMHQ4/SltsfY6fChssPU5fanuMnQ4fI=")
    secret_iv_b64: str = os.getenv("SECRET_IV_B64", "Gis8TV5veoucDR4vOktcbQ==")

    # Query safety
    max_rows: int = int(os.getenv("MAX_ROWS", "1000"))

    # Optional default datasource, used when a request carries no connection id
    db_type: str = os.getenv("DB_TYPE", "mysql")
    db_host: str = os.getenv("DB_HOST", "127.0.0.1")
    db_port: str = os.getenv("DB_PORT", "")
    db_user: str = os.getenv("DB_USER", "")
    db_pass: str = os.getenv("DB_PASS", "")
    db_name: str = os.getenv("DB_NAME", "")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

# Create a global settings object
settings = Settings()
