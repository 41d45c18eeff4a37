# config.py
import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # === Catálogo (MongoDB) ===
    MONGO_URI = os.getenv("MONGO_URI")
    DB_NAME = os.getenv("DB_NAME", "vreyes")
    COLLECTION_PROYECTOS = os.getenv("COLLECTION_PROYECTOS", "projects")
    COLLECTION_CHAT_LOGS = os.getenv("COLLECTION_CHAT_LOGS", "chat_logs")
    MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", 10000))

    # === Modelo de lenguaje (API compatible OpenAI) ===
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    LLM_BASE_URL = os.getenv("LLM_BASE_URL") or None
    CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4.1-mini")
    CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.2"))
    CHAT_MAX_TOKENS = int(os.getenv("CHAT_MAX_TOKENS", 800))
    LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "30"))

    # === Límites del agente ===
    RATE_WINDOW_SECONDS = int(os.getenv("RATE_WINDOW_SECONDS", 5 * 60))
    RATE_MAX_REQUESTS = int(os.getenv("RATE_MAX_REQUESTS", 60))
    MAX_MESSAGE_LENGTH = 1500
    HISTORIAL_MAX = 10
    MAX_PROYECTOS = 10
    MAX_COMUNAS = 500
    SOURCE_LABEL = "web_chat"

    # === Sitio y derivación ===
    SITE_URL = os.getenv("SITE_URL", "https://www.vreyes.cl").rstrip("/")
    WHATSAPP_URL = os.getenv("WHATSAPP_URL", "")

    # === Logs y servidor ===
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", 8000))
