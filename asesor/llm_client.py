# asesor/llm_client.py
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List

from openai import AsyncOpenAI, OpenAIError

from config import Config
from .errors import ErrorModelo, ServicioNoDisponible
from .prompts import SYSTEM_PROMPT, construir_seccion_contexto

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeltaModelo:
    tipo: str  # "delta" | "error"
    texto: str = ""


def construir_entrada(historial: List[Dict[str, str]], contexto: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT.strip()},
        {"role": "system", "content": construir_seccion_contexto(contexto)},
        *({"role": m["role"], "content": m["content"]} for m in historial),
    ]


class ClienteLLM:
    def __init__(
        self,
        client: AsyncOpenAI,
        modelo: str = Config.CHAT_MODEL,
        temperature: float = Config.CHAT_TEMPERATURE,
        max_tokens: int = Config.CHAT_MAX_TOKENS,
    ):
        self.client = client
        self.modelo = modelo
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def desde_config(cls) -> "ClienteLLM":
        if not Config.OPENAI_API_KEY:
            raise ServicioNoDisponible(
                "El servicio de asistente no está disponible por el momento. Contáctanos por WhatsApp."
            )
        client = AsyncOpenAI(
            api_key=Config.OPENAI_API_KEY,
            base_url=Config.LLM_BASE_URL,
            timeout=Config.LLM_TIMEOUT,
        )
        return cls(client)

    async def abrir_stream(self, mensajes: List[Dict[str, str]]) -> Any:
        logger.info(f"[LLM] Enviando {len(mensajes)} mensajes a {self.modelo}...")
        try:
            return await self.client.chat.completions.create(
                model=self.modelo,
                messages=mensajes,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
        except OpenAIError as e:
            logger.error(f"[LLM] Fallo abriendo el stream: {e}")
            raise ErrorModelo() from e

    async def deltas(self, stream: Any) -> AsyncIterator[DeltaModelo]:
        """Convierte los chunks del SDK en deltas; una falla a mitad de camino llega como delta de error."""
        try:
            async with stream:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    texto = chunk.choices[0].delta.content
                    if texto:
                        yield DeltaModelo("delta", texto)
        except Exception as e:
            logger.error(f"[LLM] Error durante el stream: {e}")
            yield DeltaModelo("error", str(e))
